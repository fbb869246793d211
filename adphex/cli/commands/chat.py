"""Chat commands."""

from __future__ import annotations

import asyncio
import shlex
from typing import TYPE_CHECKING, Annotated, Optional

import typer
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from adphex.chat.governor import RateGovernor
from adphex.chat.session import ChatSession
from adphex.cli.render import render_message
from adphex.cli.utils import console
from adphex.client import AdphexClient
from adphex.exceptions import ValidationError
from adphex.settings import get_settings

if TYPE_CHECKING:
    from adphex.chat.conversation import Snapshot

HELP_TEXT = (
    "[bold blue]Adphex Chat[/bold blue]\n\n"
    "Ask anything about your finances.\n"
    "Type [cyan]/exit[/cyan] to end, [cyan]/reset[/cyan] to start over.\n"
    "[cyan]/accounts <doc_id,...> <count>[/cyan] assigns uploaded documents to an account;\n"
    "answer with [cyan]/assign[/cyan], [cyan]/new[/cyan] or [cyan]/yes[/cyan]. "
    "[cyan]/pending[/cyan] lists open selections."
)


def chat(
    message: Annotated[
        Optional[str],  # noqa: UP007
        typer.Argument(help="Initial message (or leave empty for interactive mode)"),
    ] = None,
    demo: Annotated[
        bool,
        typer.Option("--demo", help="Enable the demo question limit"),
    ] = False,
    max_questions: Annotated[
        Optional[int],  # noqa: UP007
        typer.Option("--max-questions", "-m", help="Question limit in demo mode"),
    ] = None,
    user_id: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--user", "-u", help="User ID to chat as"),
    ] = None,
) -> None:
    """Interactive chat with the Adphex assistant.

    Examples:
        adphex chat "How much did I spend on food last month?"
        adphex chat --demo
        adphex chat  # Interactive mode
    """
    asyncio.run(_chat_interactive(message, demo, max_questions, user_id))


def ask(
    message: Annotated[str, typer.Argument(help="Question to ask")],
    user_id: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--user", "-u", help="User ID to chat as"),
    ] = None,
) -> None:
    """Ask one question and print the answer.

    Exits with status 1 if the answer could not be produced.
    """
    failed = asyncio.run(_ask_once(message, user_id))
    if failed:
        raise typer.Exit(code=1)


def _build_session(
    client: AdphexClient,
    *,
    demo: bool,
    max_questions: int | None,
    user_id: str | None,
) -> ChatSession:
    settings = get_settings()

    def on_limit_reached() -> None:
        console.print(
            Panel(
                "You've reached the demo question limit.\n"
                "Sign up to ask unlimited questions and analyze your own data.",
                title="Demo limit",
                border_style="red",
            )
        )

    governor = None
    if demo or settings.demo_mode:
        governor = RateGovernor(max_questions or settings.demo_max_questions, on_limit_reached)

    return ChatSession(
        client,
        governor=governor,
        user_id=user_id or settings.user_id,
        on_refresh=lambda: console.print("[dim]Your transactions were updated.[/dim]"),
        refresh_tool_name=settings.refresh_tool_name,
    )


async def _send_live(session: ChatSession, text: str) -> bool:
    """Send a message, showing the streaming reply in a live view."""
    with Live(console=console, refresh_per_second=12, transient=True) as live:

        def show(snapshot: Snapshot) -> None:
            index = session.conversation.streaming_index()
            if index is not None:
                live.update(render_message(snapshot[index], index))

        unsubscribe = session.conversation.subscribe(show)
        try:
            return await session.send(text)
        finally:
            unsubscribe()


def _print_since(session: ChatSession, start: int) -> int:
    """Print entries appended since ``start`` (except user input); return new length."""
    snapshot = session.conversation.snapshot
    for index in range(start, len(snapshot)):
        if snapshot[index].role != "user":
            console.print(render_message(snapshot[index], index))
            console.print()
    return len(snapshot)


async def _ask_once(message: str, user_id: str | None) -> bool:
    async with AdphexClient() as client:
        session = _build_session(client, demo=False, max_questions=None, user_id=user_id)
        await session.send(message)
        _print_since(session, 0)
        return session.last_error is not None


async def _handle_command(session: ChatSession, command: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    try:
        args = shlex.split(command)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return True
    name, params = args[0].lower(), args[1:]

    if name in ("/exit", "/quit", "/q"):
        return False

    try:
        if name == "/reset":
            session.conversation.reset()
            console.print("[dim]Conversation cleared.[/dim]")
        elif name == "/pending":
            pending = session.subflows.pending_flows()
            console.print(f"Open selections: {', '.join(map(str, pending)) or 'none'}")
        elif name == "/accounts" and len(params) == 2:
            document_ids = [doc for doc in params[0].split(",") if doc]
            await session.subflows.show_account_selection(document_ids, int(params[1]))
        elif name == "/assign" and len(params) == 2:
            await session.subflows.select_existing(int(params[0]), params[1])
        elif name == "/yes" and len(params) == 1:
            await session.subflows.confirm_match(int(params[0]))
        elif name == "/no" and len(params) == 1:
            session.subflows.decline_match(int(params[0]))
        elif name == "/new" and len(params) >= 2:
            index, words = int(params[0]), params[1:]
            last4 = None
            if len(words) > 1 and words[-1].isdigit() and len(words[-1]) <= 4:
                last4 = words.pop()
            await session.subflows.create_new(index, " ".join(words), last4)
        else:
            console.print(f"[yellow]Unknown command or arguments: {escape(command)}[/yellow]")
    except (ValidationError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
    return True


async def _chat_interactive(
    initial_message: str | None,
    demo: bool,
    max_questions: int | None,
    user_id: str | None,
) -> None:
    """Run interactive chat session."""
    console.print(Panel(HELP_TEXT, title="💬 Adphex", border_style="blue"))

    async with AdphexClient() as client:
        session = _build_session(client, demo=demo, max_questions=max_questions, user_id=user_id)
        printed = 0

        if initial_message:
            console.print(f"[bold cyan]You:[/bold cyan] {escape(initial_message)}\n")
            await _send_live(session, initial_message)
            printed = _print_since(session, printed)

        while True:
            if session.governor is not None and session.governor.remaining is not None:
                console.print(f"[dim]{session.governor.remaining} question(s) remaining.[/dim]")
            try:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
            except (KeyboardInterrupt, EOFError):
                break

            if not user_input.strip():
                continue

            if user_input.startswith("/"):
                if not await _handle_command(session, user_input):
                    console.print("[dim]Ending conversation.[/dim]")
                    break
                printed = min(printed, len(session.conversation))
            else:
                console.print()
                await _send_live(session, user_input)

            printed = _print_since(session, printed)

    console.print("\n[dim]Chat session ended.[/dim]")
