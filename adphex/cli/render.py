"""Rich renderables for conversation messages."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from adphex.streaming.ledger import summary_label

if TYPE_CHECKING:
    from rich.console import RenderableType

    from adphex.chat.models import AccountSelectionRequest, Message, ToolCall

_ARGS_PREVIEW = 100


def _args_preview(call: ToolCall) -> str | None:
    # reasoning is shown on its own line
    args = {key: value for key, value in call.args.items() if key != "reasoning"}
    if not args:
        return None
    text = json.dumps(args, default=str)
    return text[:_ARGS_PREVIEW] + ("..." if len(text) > _ARGS_PREVIEW else "")


def render_tool_calls(message: Message) -> RenderableType | None:
    """Summary line plus one entry per tool call."""
    label = summary_label(message.tool_calls, message.streaming)
    if label is None or not message.tool_calls:
        return None

    lines: list[RenderableType] = [Text(f"▶ {label}", style="dim")]
    for call in message.tool_calls:
        if call.reasoning:
            lines.append(Text(f"  {call.reasoning}", style="italic dim"))
        entry = Text("  ")
        entry.append(call.name, style="cyan")
        if call.duration:
            entry.append(f" {call.duration}", style="dim")
        if not call.closed:
            entry.append(" executing...", style="blue")
        elif call.result_count is not None:
            entry.append(f" ({call.result_count} results)", style="dim")
        lines.append(entry)
        preview = _args_preview(call)
        if preview:
            lines.append(Text(f"    {preview}", style="dim"))
    return Group(*lines)


def render_account_selection(index: int, request: AccountSelectionRequest) -> RenderableType:
    """Account table with the commands that answer the flow."""
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Account ID", style="cyan")
    table.add_column("Name")
    for account in request.accounts:
        table.add_row(account.id or "", account.label)

    hints = [f"/assign {index} <account_id>", f"/new {index} <name> [last4]"]
    if request.type == "statement_match":
        hints.insert(0, f"/yes {index}")
    footer = Text("Reply with: " + "  |  ".join(hints), style="dim")

    if request.accounts:
        return Group(table, footer)
    return footer


def render_message(message: Message, index: int | None = None) -> RenderableType:
    """Render one conversation entry."""
    if message.role == "user":
        return Text.assemble(("You: ", "bold cyan"), message.content)

    if message.role == "system":
        parts: list[RenderableType] = [Markdown(message.content)]
        if message.account_selection is not None and index is not None:
            parts.append(render_account_selection(index, message.account_selection))
        if message.suggested_actions:
            parts.append(
                Text("Quick actions: " + " · ".join(message.suggested_actions), style="dim")
            )
        return Panel(Group(*parts), title="🔔", border_style="yellow")

    body = message.content or ("_Thinking..._" if message.streaming else "")
    parts = [Text("Adphex:", style="bold green"), Markdown(body)]
    if message.chart_config is not None:
        title = message.chart_config.get("title") or message.chart_config.get("type") or "chart"
        parts.append(Text(f"[chart: {title}]", style="magenta"))
    tools = render_tool_calls(message)
    if tools is not None:
        parts.append(tools)
    return Group(*parts)
