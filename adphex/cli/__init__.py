"""CLI application setup using Typer.

Provides the command-line interface for chatting with Adphex.
"""

from adphex.cli.main import app

__all__ = ["app"]
