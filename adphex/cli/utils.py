"""Shared CLI helpers."""

from rich.console import Console

console = Console()
