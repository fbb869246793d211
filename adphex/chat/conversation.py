"""Conversation snapshot store.

The conversation is an immutable tuple of messages swapped whole on every
commit. Both the main chat stream and the account sub-flows write here, and
every write is expressed as a function of the previous snapshot, so the two
paths can interleave on the event loop without losing updates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from adphex.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from adphex.chat.models import Message

logger = logging.getLogger(__name__)

Snapshot = tuple["Message", ...]


class Conversation:
    """Append-only message list with change notification.

    Usage::

        conversation = Conversation()
        conversation.subscribe(render)
        index = conversation.append(Message(role="user", content="Hi"))
    """

    def __init__(self, messages: Snapshot = ()) -> None:
        self._messages: Snapshot = tuple(messages)
        self._listeners: list[Callable[[Snapshot], None]] = []
        self._check_single_stream(self._messages)

    @property
    def snapshot(self) -> Snapshot:
        """The latest committed snapshot."""
        return self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def streaming_index(self) -> int | None:
        """Index of the message currently streaming, if any."""
        for index, message in enumerate(self._messages):
            if message.streaming:
                return index
        return None

    def index_of(self, message_id: str) -> int | None:
        """Current index of the message with the given ID."""
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def subscribe(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Register a render callback; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def apply(self, transition: Callable[[Snapshot], Snapshot]) -> Snapshot:
        """Commit ``transition(snapshot)`` as the next snapshot.

        The transition must be pure. Returning the same tuple is a no-op
        and does not notify listeners.
        """
        current = self._messages
        updated = tuple(transition(current))
        if updated is current:
            return current
        if len(updated) < len(current):
            raise ValidationError("Conversation transitions may not drop messages")
        self._check_single_stream(updated)
        self._commit(updated)
        return updated

    def append(self, message: Message) -> int:
        """Append a message and return its index."""
        self.apply(lambda messages: (*messages, message))
        return len(self._messages) - 1

    def replace(self, index: int, message: Message) -> None:
        """Replace the message at ``index``."""
        self.apply(lambda messages: (*messages[:index], message, *messages[index + 1 :]))

    def delete(self, index: int) -> Message:
        """Remove one entry at the user's request.

        Refused while a response is streaming, since the stream addresses
        its message by index.
        """
        if self.streaming_index() is not None:
            raise ValidationError("Cannot delete messages while a response is streaming")
        if not 0 <= index < len(self._messages):
            raise ValidationError(f"No message at index {index}")
        removed = self._messages[index]
        self._commit(self._messages[:index] + self._messages[index + 1 :])
        return removed

    def reset(self) -> None:
        """Drop the whole conversation."""
        if self.streaming_index() is not None:
            raise ValidationError("Cannot reset while a response is streaming")
        self._commit(())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _commit(self, messages: Snapshot) -> None:
        self._messages = messages
        for listener in list(self._listeners):
            try:
                listener(messages)
            except Exception:
                logger.exception("Conversation listener %r failed", listener)

    @staticmethod
    def _check_single_stream(messages: Snapshot) -> None:
        streaming = sum(1 for message in messages if message.streaming)
        if streaming > 1:
            raise ValidationError("At most one message may be streaming at a time")
