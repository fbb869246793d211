"""Dispatch user messages and stream the replies into the conversation.

``ChatSession`` owns the request/response lifecycle of the main chat:

1. The governor (demo mode) counts the attempt or refuses it.
2. The user message and an empty streaming assistant placeholder are
   appended to the conversation.
3. ``/api/chat`` is streamed through the decoder and every event is
   reduced into the placeholder.
4. Any failure ends as a visible assistant message; ``send`` never raises
   transport or protocol errors. A cancelled send closes its reply with
   an error before the cancellation propagates.

Sends are serialized: a send issued while a reply is still streaming waits
for it to finish before its own user message is appended, so two replies
never write to the same message slot.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from adphex.chat.conversation import Conversation
from adphex.chat.governor import RateGovernor
from adphex.chat.models import Message
from adphex.chat.subflows import SubflowInjector
from adphex.exceptions import TransportError
from adphex.settings import get_settings
from adphex.streaming.decoder import decode_stream
from adphex.streaming.reducer import (
    DEFAULT_REFRESH_TOOL,
    Reduction,
    StreamState,
    fail,
    finalize,
    reduce,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from adphex.client import AdphexClient
    from adphex.streaming.events import Event, UnknownEvent

logger = logging.getLogger(__name__)

CANCELLED = "Request cancelled"


class ChatSession:
    """One conversation with the Adphex assistant.

    Usage::

        async with AdphexClient() as client:
            session = ChatSession(client)
            session.conversation.subscribe(render)
            await session.send("How much did I spend on food last month?")

    Args:
        client: API client.
        conversation: Existing conversation to continue (new one if None).
        governor: Question governor; None means unlimited.
        user_id: Overrides the client's configured user ID.
        on_refresh: Called when a reply performed a successful
            categorization or a sub-flow assignment succeeded.
        refresh_tool_name: Tool whose success triggers ``on_refresh``.
    """

    def __init__(
        self,
        client: AdphexClient,
        *,
        conversation: Conversation | None = None,
        governor: RateGovernor | None = None,
        user_id: str | None = None,
        on_refresh: Callable[[], None] | None = None,
        refresh_tool_name: str = DEFAULT_REFRESH_TOOL,
    ) -> None:
        self.client = client
        self.conversation = conversation if conversation is not None else Conversation()
        self.governor = governor
        self.user_id = user_id
        self.on_refresh = on_refresh
        self.refresh_tool_name = refresh_tool_name
        self.subflows = SubflowInjector(self.conversation, client, on_refresh=self._notify_refresh)
        self.last_error: str | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        client: AdphexClient,
        *,
        on_refresh: Callable[[], None] | None = None,
        on_limit_reached: Callable[[], None] | None = None,
    ) -> ChatSession:
        """Build a session configured from ``Settings`` (demo mode, refresh tool)."""
        settings = get_settings()
        governor = (
            RateGovernor(settings.demo_max_questions, on_limit_reached)
            if settings.demo_mode
            else None
        )
        return cls(
            client,
            governor=governor,
            user_id=settings.user_id,
            on_refresh=on_refresh,
            refresh_tool_name=settings.refresh_tool_name,
        )

    @property
    def is_busy(self) -> bool:
        """True while a reply is streaming."""
        return self._lock.locked()

    async def send(self, content: str) -> bool:
        """Send a user message and stream the reply into the conversation.

        Args:
            content: The user's text. Blank input is ignored.

        Returns:
            True if the message was dispatched (the reply may still have
            failed; failures are shown in the conversation). False if the
            input was blank or the question limit was reached.
        """
        text = content.strip()
        if not text:
            return False

        # Counted before waiting on the lock: queued sends use up questions too
        if self.governor is not None and not self.governor.try_acquire():
            return False

        async with self._lock:
            await self._run_turn(text)
        return True

    async def _run_turn(self, text: str) -> None:
        self.conversation.append(Message(role="user", content=text))
        history = self.conversation.snapshot
        index = self.conversation.append(
            Message(role="assistant", content="", is_streaming=True, tool_calls=())
        )
        state = StreamState(index=index)

        try:
            async with self.client.stream_chat(history, self.user_id) as chunks:
                async for event in decode_stream(chunks):
                    state = self._apply(state, event)
        except asyncio.CancelledError:
            logger.info("Chat request cancelled")
            state = self._commit(lambda messages: fail(messages, state, CANCELLED)).state
            self.last_error = state.error
            raise
        except TransportError as e:
            logger.warning("Chat request failed (%s): %s", e.correlation_id, e)
            state = self._commit(lambda messages: fail(messages, state, str(e))).state
        except Exception as e:
            logger.exception("Unexpected error while streaming reply")
            detail = str(e) or type(e).__name__
            state = self._commit(lambda messages: fail(messages, state, detail)).state
        else:
            if not state.terminal:
                logger.warning("Chat stream closed without a done event")
                state = self._commit(lambda messages: finalize(messages, state)).state

        self.last_error = state.error

    def _apply(self, state: StreamState, event: Event | UnknownEvent) -> StreamState:
        reduction = self._commit(
            lambda messages: reduce(
                messages, state, event, refresh_tool_name=self.refresh_tool_name
            )
        )
        if reduction.refresh_requested:
            self._notify_refresh()
        return reduction.state

    def _commit(self, transition: Callable[[tuple[Message, ...]], Reduction]) -> Reduction:
        result: list[Reduction] = []

        def step(messages: tuple[Message, ...]) -> tuple[Message, ...]:
            reduction = transition(messages)
            result.append(reduction)
            return reduction.messages

        self.conversation.apply(step)
        return result[0]

    def _notify_refresh(self) -> None:
        if self.on_refresh is None:
            return
        try:
            self.on_refresh()
        except Exception:
            logger.exception("Refresh callback failed")
