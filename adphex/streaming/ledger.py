"""Pair each tool call with its result.

The chat protocol models tool execution as strictly serial: a
``tool_call`` opens a call, and the next ``tool_result`` with the same name
closes it. The ledger makes the open call an explicit ``pending`` state
instead of a free-floating pointer, and is an immutable value so the reducer
can stay pure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from adphex.chat.models import ToolCall

logger = logging.getLogger(__name__)


def _plural(count: int) -> str:
    return f"{count} tool{'s' if count != 1 else ''}"


@dataclass(frozen=True)
class ToolCallLedger:
    """Serial record of the tool calls made for one assistant message.

    Attributes:
        calls: Every call opened so far, in arrival order.
        pending: Index into ``calls`` of the open call, or None.
    """

    calls: tuple[ToolCall, ...] = ()
    pending: int | None = None

    @property
    def is_open(self) -> bool:
        return self.pending is not None

    @property
    def current(self) -> ToolCall | None:
        """The open call awaiting its result."""
        return self.calls[self.pending] if self.pending is not None else None

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def closed_count(self) -> int:
        return sum(1 for call in self.calls if call.closed)

    def open(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        reasoning: str | None = None,
    ) -> ToolCallLedger:
        """Record a new open call.

        Only one call may be open. If another is still pending it is left
        in ``calls`` without a result and the new call takes its place.
        """
        if self.current is not None:
            logger.debug(
                "Tool call '%s' opened while '%s' still pending; abandoning it",
                name,
                self.current.name,
            )
        call = ToolCall(name=name, args=args or {}, reasoning=reasoning)
        return replace(self, calls=(*self.calls, call), pending=len(self.calls))

    def close(
        self,
        name: str,
        *,
        result: Any = None,
        duration: str | None = None,
        result_count: int | None = None,
    ) -> ToolCallLedger:
        """Attach a result to the open call if ``name`` matches it.

        Returns ``self`` unchanged when nothing is open or the names
        differ; results can arrive late or duplicated.
        """
        current = self.current
        if current is None or current.name != name:
            logger.debug(
                "Dropping tool result for '%s' (open call: %s)",
                name,
                current.name if current else None,
            )
            return self

        closed = current.model_copy(
            update={
                "result": result,
                "duration": duration,
                "result_count": result_count,
                "closed": True,
            }
        )
        calls = tuple(
            closed if position == self.pending else call for position, call in enumerate(self.calls)
        )
        return replace(self, calls=calls, pending=None)

    def has_successful(self, tool_name: str) -> bool:
        """True if a closed call to ``tool_name`` reported success."""
        return any(call.closed and call.name == tool_name and call.succeeded for call in self.calls)

    def summary_label(self, streaming: bool) -> str | None:
        """Status line for the tool-call disclosure, or None with no calls."""
        if not self.calls:
            return None
        if streaming:
            return f"Working... ({_plural(self.count)})"
        return f"Analyzed using {_plural(self.count)}"


def summary_label(tool_calls: tuple[ToolCall, ...] | None, streaming: bool) -> str | None:
    """``ToolCallLedger.summary_label`` for a rendered message's calls."""
    return ToolCallLedger(calls=tuple(tool_calls or ())).summary_label(streaming)
