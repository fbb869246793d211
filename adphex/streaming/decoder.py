"""NDJSON stream decoder — turn response bytes into chat events.

Chunk boundaries from the network never line up with event boundaries: a
chunk may end mid-line or mid-way through a multi-byte UTF-8 character.
``LineBuffer`` carries the partial tail between chunks, and
``decode_stream`` parses each complete line independently so one bad line
cannot abort the rest of the response.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import TYPE_CHECKING, Any

import pydantic

from adphex.streaming.events import UnknownEvent, parse_event

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterable

    from adphex.streaming.events import Event

logger = logging.getLogger(__name__)


class LineBuffer:
    """Reassemble complete lines from arbitrarily split byte chunks.

    Usage::

        buffer = LineBuffer()
        for chunk in chunks:
            for line in buffer.feed(chunk):
                handle(line)
        leftover = buffer.close()
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def remainder(self) -> str:
        """Text received after the last newline."""
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the lines it completed.

        Line terminators are stripped; ``\\r\\n`` is treated as ``\\n``.
        """
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def close(self) -> str:
        """Flush the decoder and return the unterminated tail."""
        self._pending += self._decoder.decode(b"", final=True)
        tail, self._pending = self._pending, ""
        return tail


def parse_line(line: str) -> Event | UnknownEvent | None:
    """Parse one NDJSON line.

    Returns ``None`` for blank lines and for lines that are not valid
    events; the latter are logged and skipped.
    """
    if not line.strip():
        return None

    try:
        payload: Any = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Skipping unparseable stream line: %s", line[:200])
        return None

    if not isinstance(payload, dict):
        logger.warning("Skipping non-object stream line: %s", line[:200])
        return None

    try:
        return parse_event(payload)
    except pydantic.ValidationError as e:
        logger.warning(
            "Skipping malformed '%s' event (%d errors): %s",
            payload.get("type"),
            e.error_count(),
            line[:200],
        )
        return None


async def decode_stream(
    chunks: AsyncIterable[bytes],
) -> AsyncGenerator[Event | UnknownEvent, None]:
    """Lazily decode an NDJSON byte stream into events.

    Only complete lines are decoded. A partial line still buffered when the
    stream closes was never terminated by the server and is dropped.

    Args:
        chunks: Response body chunks, e.g. ``response.aiter_bytes()``.

    Yields:
        One event per valid line, in arrival order.
    """
    buffer = LineBuffer()

    async for chunk in chunks:
        for line in buffer.feed(chunk):
            event = parse_line(line)
            if event is not None:
                yield event

    tail = buffer.close()
    if tail.strip():
        logger.debug("Discarding unterminated stream tail: %s", tail[:200])
