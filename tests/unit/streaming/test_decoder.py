"""Unit tests for the NDJSON line buffer and stream decoder."""

import logging

import pytest

from adphex.streaming.decoder import LineBuffer, decode_stream, parse_line
from adphex.streaming.events import (
    DoneEvent,
    TextDeltaEvent,
    ToolCallEvent,
    UnknownEvent,
)
from tests.helpers.streams import (
    async_chunks,
    done,
    ndjson,
    split_every,
    text_delta,
    tool_call,
)


async def _collect(chunks):
    return [event async for event in decode_stream(async_chunks(chunks))]


class TestLineBuffer:
    def test_complete_lines_returned(self):
        buffer = LineBuffer()
        assert buffer.feed(b"one\ntwo\n") == ["one", "two"]
        assert buffer.remainder == ""

    def test_partial_line_carried_over(self):
        buffer = LineBuffer()
        assert buffer.feed(b'{"type": "te') == []
        assert buffer.remainder == '{"type": "te'
        assert buffer.feed(b'xt_delta"}\n') == ['{"type": "text_delta"}']

    def test_crlf_stripped(self):
        buffer = LineBuffer()
        assert buffer.feed(b"a\r\nb\r\n") == ["a", "b"]

    def test_multibyte_character_split_across_chunks(self):
        encoded = "café ☕\n".encode()
        split_at = encoded.index("☕".encode()) + 1
        buffer = LineBuffer()
        assert buffer.feed(encoded[:split_at]) == []
        assert buffer.feed(encoded[split_at:]) == ["café ☕"]

    def test_close_returns_tail(self):
        buffer = LineBuffer()
        buffer.feed(b"done\npartial")
        assert buffer.close() == "partial"
        assert buffer.remainder == ""


class TestParseLine:
    def test_blank_line_ignored(self):
        assert parse_line("") is None
        assert parse_line("   ") is None

    def test_invalid_json_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="adphex.streaming.decoder"):
            assert parse_line("{not json") is None
        assert "unparseable" in caplog.text

    def test_non_object_skipped(self):
        assert parse_line("[1, 2, 3]") is None
        assert parse_line('"text"') is None

    def test_malformed_known_event_skipped(self):
        # text_delta without text
        assert parse_line('{"type": "text_delta", "data": {}}') is None

    def test_unknown_type(self):
        event = parse_line('{"type": "progress", "data": {"pct": 50}}')
        assert isinstance(event, UnknownEvent)
        assert event.type == "progress"
        assert event.data == {"pct": 50}

    def test_valid_event(self):
        event = parse_line('{"type": "text_delta", "data": {"text": "Hi"}}')
        assert isinstance(event, TextDeltaEvent)
        assert event.data.text == "Hi"


class TestDecodeStream:
    @pytest.mark.asyncio()
    async def test_single_chunk(self):
        body = ndjson(text_delta("Hi"), done())
        events = await _collect([body])
        assert [event.type for event in events] == ["text_delta", "done"]

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("size", [1, 3, 7, 64])
    async def test_chunking_does_not_change_events(self, size):
        body = ndjson(
            text_delta("Hello "),
            tool_call("get_spending", {"category": "food"}, reasoning="Looking up ☕"),
            text_delta("wörld"),
            done(),
        )
        whole = await _collect([body])
        split = await _collect(split_every(body, size))
        assert split == whole
        assert isinstance(split[1], ToolCallEvent)
        assert split[1].data.reasoning == "Looking up ☕"

    @pytest.mark.asyncio()
    async def test_bad_line_does_not_abort_stream(self):
        body = ndjson(text_delta("a")) + b"garbage\n" + ndjson(text_delta("b"), done())
        events = await _collect([body])
        assert [event.type for event in events] == ["text_delta", "text_delta", "done"]

    @pytest.mark.asyncio()
    async def test_unterminated_tail_discarded(self):
        body = ndjson(text_delta("a")) + b'{"type": "done", "data": {}}'
        events = await _collect([body])
        assert len(events) == 1
        assert isinstance(events[0], TextDeltaEvent)

    @pytest.mark.asyncio()
    async def test_empty_stream(self):
        assert await _collect([]) == []

    @pytest.mark.asyncio()
    async def test_done_without_data(self):
        events = await _collect([b'{"type": "done"}\n'])
        assert isinstance(events[0], DoneEvent)
        assert events[0].data == {}
