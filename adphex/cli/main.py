"""CLI entry point.

Provides the main CLI application with commands for:
- chat: Interactive chat with the Adphex assistant
- ask: One question, one answer
- accounts: List known accounts
"""

from typing import Annotated, Optional

import typer
from rich.panel import Panel

from adphex import __version__
from adphex.cli.commands.accounts import accounts
from adphex.cli.commands.chat import ask, chat
from adphex.cli.utils import console
from adphex.logging_config import configure_logging

app = typer.Typer(
    name="adphex",
    help="Chat with your finances from the terminal",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option(
            "--log-level",
            "-l",
            help="Log level (DEBUG, INFO, WARNING, ERROR)",
            case_sensitive=False,
        ),
    ] = None,
) -> None:
    """Adphex command line."""
    level = log_level.upper() if log_level else None
    if level is not None and level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        raise typer.BadParameter(f"Unknown log level: {log_level}", param_hint="--log-level")
    configure_logging(level)  # type: ignore[arg-type]


app.command()(chat)
app.command()(ask)
app.command()(accounts)


@app.command()
def version() -> None:
    """Show Adphex version information."""
    console.print(
        Panel(
            f"[bold]Adphex[/bold] v{__version__}\nConversational finance assistant",
            title="💬 Version",
            border_style="blue",
        )
    )


# Entry point for: python -m adphex.cli.main
if __name__ == "__main__":
    app()
