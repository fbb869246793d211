"""Account commands."""

import asyncio

import typer
from rich.markup import escape
from rich.table import Table

from adphex.cli.utils import console
from adphex.client import AdphexClient
from adphex.exceptions import AccountsError


def accounts() -> None:
    """List the accounts transactions can be assigned to."""
    asyncio.run(_list_accounts())


async def _list_accounts() -> None:
    """Fetch and print accounts."""
    async with AdphexClient() as client:
        try:
            found = await client.list_accounts()
        except AccountsError as e:
            console.print(f"[red]Couldn't load accounts: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e

    if not found:
        console.print("[yellow]No accounts found.[/yellow]")
        return

    table = Table(title=f"Accounts ({len(found)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Last 4")
    table.add_column("Type")
    table.add_column("Issuer", style="dim")

    for account in found:
        table.add_row(
            account.id or "",
            account.display_name or "",
            account.account_number_last4 or "",
            account.account_type or "",
            account.issuer or "",
        )

    console.print(table)
