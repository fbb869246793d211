"""Event reducer — apply chat events to the streaming assistant message.

``reduce(messages, state, event)`` is a pure transition: it returns the next
conversation snapshot and stream state without side effects. The one effect
the protocol needs (refreshing data after a successful categorization) is
reported back as ``Reduction.refresh_requested`` for the caller to perform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from adphex.streaming.events import (
    ChartConfigEvent,
    DoneEvent,
    ErrorEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from adphex.streaming.ledger import ToolCallLedger

if TYPE_CHECKING:
    from adphex.chat.models import Message
    from adphex.streaming.events import Event, UnknownEvent

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TOOL = "categorize_transaction"


def format_error_message(message: str) -> str:
    """User-facing text for a failed response."""
    return f"Sorry, I encountered an error: {message}. Please try again."


@dataclass(frozen=True)
class StreamState:
    """Accumulated state of one streamed assistant response.

    Attributes:
        index: Conversation index of the assistant message being built.
        text: Concatenation of every ``text_delta`` so far.
        ledger: Tool calls made during the response.
        terminal: Set once ``done`` or ``error`` has been applied.
        error: Failure message when the response ended in an error.
    """

    index: int
    text: str = ""
    ledger: ToolCallLedger = field(default_factory=ToolCallLedger)
    terminal: bool = False
    error: str | None = None


@dataclass(frozen=True)
class Reduction:
    """Result of applying one event."""

    messages: tuple[Message, ...]
    state: StreamState
    refresh_requested: bool = False


def _update(
    messages: tuple[Message, ...], index: int, **changes: Any
) -> tuple[Message, ...]:
    updated = messages[index].model_copy(update=changes)
    return (*messages[:index], updated, *messages[index + 1 :])


def reduce(
    messages: tuple[Message, ...],
    state: StreamState,
    event: Event | UnknownEvent,
    *,
    refresh_tool_name: str = DEFAULT_REFRESH_TOOL,
) -> Reduction:
    """Apply one event to the message at ``state.index``.

    Args:
        messages: Current conversation snapshot.
        state: Stream state before the event.
        event: Decoded event.
        refresh_tool_name: Tool whose successful result requests a refresh
            when the response completes.

    Returns:
        The next snapshot and state. Events after a terminal event, and
        events of unknown type, return the inputs unchanged.
    """
    unchanged = Reduction(messages=messages, state=state)

    if state.terminal:
        logger.debug("Ignoring '%s' event after terminal event", event.type)
        return unchanged

    if isinstance(event, TextDeltaEvent):
        text = state.text + event.data.text
        return Reduction(
            messages=_update(messages, state.index, content=text),
            state=replace(state, text=text),
        )

    if isinstance(event, ToolCallEvent):
        ledger = state.ledger.open(event.data.name, event.data.args, event.data.reasoning)
        return Reduction(
            messages=_update(messages, state.index, tool_calls=ledger.calls),
            state=replace(state, ledger=ledger),
        )

    if isinstance(event, ToolResultEvent):
        ledger = state.ledger.close(
            event.data.name,
            result=event.data.result,
            duration=event.data.duration,
            result_count=event.data.result_count,
        )
        if ledger is state.ledger:
            return unchanged
        return Reduction(
            messages=_update(messages, state.index, tool_calls=ledger.calls),
            state=replace(state, ledger=ledger),
        )

    if isinstance(event, ChartConfigEvent):
        return Reduction(
            messages=_update(messages, state.index, chart_config=event.data.config),
            state=state,
        )

    if isinstance(event, DoneEvent):
        return Reduction(
            messages=_update(messages, state.index, is_streaming=False),
            state=replace(state, terminal=True),
            refresh_requested=state.ledger.has_successful(refresh_tool_name),
        )

    if isinstance(event, ErrorEvent):
        logger.warning("Chat stream reported an error: %s", event.data.message)
        return Reduction(
            messages=_update(
                messages,
                state.index,
                content=format_error_message(event.data.message),
                is_streaming=False,
            ),
            state=replace(state, terminal=True, error=event.data.message),
        )

    logger.debug("Ignoring unknown event type '%s'", event.type)
    return unchanged


def finalize(messages: tuple[Message, ...], state: StreamState) -> Reduction:
    """Close a response whose stream ended without ``done`` or ``error``."""
    if state.terminal:
        return Reduction(messages=messages, state=state)
    return Reduction(
        messages=_update(messages, state.index, is_streaming=False),
        state=replace(state, terminal=True),
    )


def fail(messages: tuple[Message, ...], state: StreamState, message: str) -> Reduction:
    """Turn the response into an error message after a transport failure."""
    if state.terminal:
        return Reduction(messages=messages, state=state)
    return Reduction(
        messages=_update(
            messages,
            state.index,
            content=format_error_message(message),
            is_streaming=False,
        ),
        state=replace(state, terminal=True, error=message),
    )
