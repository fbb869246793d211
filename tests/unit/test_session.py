"""Unit tests for ChatSession."""

import asyncio
from unittest.mock import MagicMock

import pytest

from adphex.chat.governor import RateGovernor
from adphex.chat.models import Account
from adphex.chat.session import CANCELLED, ChatSession
from adphex.exceptions import TransportError
from adphex.streaming.reducer import format_error_message
from tests.helpers.fakes import FakeClient
from tests.helpers.streams import (
    done,
    error,
    ndjson,
    text_delta,
    tool_call,
    tool_result,
)

CHECKING = Account(id="a1", display_name="Checking")


class TestSend:
    @pytest.mark.asyncio()
    async def test_streams_reply_into_placeholder(self):
        client = FakeClient(ndjson(text_delta("Hi"), text_delta(" there"), done()))
        session = ChatSession(client, user_id="u1")

        assert await session.send("Hello") is True

        messages = session.conversation.snapshot
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[0].content == "Hello"
        assert messages[1].content == "Hi there"
        assert messages[1].is_streaming is False
        assert session.last_error is None
        assert client.requests == [(["Hello"], "u1")]

    @pytest.mark.asyncio()
    async def test_history_excludes_placeholder(self):
        client = FakeClient(ndjson(text_delta("One"), done()), ndjson(text_delta("Two"), done()))
        session = ChatSession(client)
        await session.send("first")
        await session.send("second")
        assert client.requests[1][0] == ["first", "One", "second"]

    @pytest.mark.asyncio()
    async def test_blank_input_ignored(self):
        client = FakeClient()
        session = ChatSession(client)
        assert await session.send("   ") is False
        assert len(session.conversation) == 0
        assert client.requests == []

    @pytest.mark.asyncio()
    async def test_input_trimmed(self):
        client = FakeClient(ndjson(done()))
        session = ChatSession(client)
        await session.send("  hi  ")
        assert session.conversation[0].content == "hi"

    @pytest.mark.asyncio()
    async def test_listener_sees_streaming_updates(self):
        client = FakeClient(ndjson(text_delta("a"), text_delta("b"), done()))
        session = ChatSession(client)
        contents = []
        session.conversation.subscribe(
            lambda snapshot: contents.append((snapshot[-1].content, snapshot[-1].is_streaming))
        )
        await session.send("x")
        assert ("a", True) in contents
        assert ("ab", True) in contents
        assert contents[-1] == ("ab", False)


class TestFailures:
    @pytest.mark.asyncio()
    async def test_server_error_event(self):
        client = FakeClient(
            ndjson(tool_call("search"), tool_result("search", 1), error("Rate limit exceeded"))
        )
        session = ChatSession(client)
        await session.send("x")
        reply = session.conversation[1]
        assert reply.content == (
            "Sorry, I encountered an error: Rate limit exceeded. Please try again."
        )
        assert reply.is_streaming is False
        assert len(reply.tool_calls) == 1
        assert session.last_error == "Rate limit exceeded"

    @pytest.mark.asyncio()
    async def test_transport_error(self):
        client = FakeClient(TransportError("Failed to get response", status_code=500))
        session = ChatSession(client)
        assert await session.send("x") is True
        reply = session.conversation[1]
        assert reply.content == (
            "Sorry, I encountered an error: Failed to get response. Please try again."
        )
        assert reply.is_streaming is False
        assert session.conversation.streaming_index() is None

    @pytest.mark.asyncio()
    async def test_unexpected_error_becomes_message(self):
        client = FakeClient(RuntimeError("boom"))
        session = ChatSession(client)
        await session.send("x")
        assert "boom" in session.conversation[1].content
        assert session.last_error == "boom"

    @pytest.mark.asyncio()
    async def test_stream_closed_without_done(self):
        client = FakeClient(ndjson(text_delta("Partial")))
        session = ChatSession(client)
        await session.send("x")
        reply = session.conversation[1]
        assert reply.content == "Partial"
        assert reply.is_streaming is False
        assert session.last_error is None

    @pytest.mark.asyncio()
    async def test_session_usable_after_failure(self):
        client = FakeClient(TransportError("down"), ndjson(text_delta("ok"), done()))
        session = ChatSession(client)
        await session.send("first")
        await session.send("second")
        assert session.conversation[-1].content == "ok"
        assert session.last_error is None

    @pytest.mark.asyncio()
    async def test_transport_error_mid_stream(self):
        client = FakeClient(ndjson(text_delta("Half an ans"), text_delta("wer")))
        client.failures[0] = TransportError("Connection reset")
        session = ChatSession(client)

        assert await session.send("x") is True

        reply = session.conversation[1]
        assert reply.content == format_error_message("Connection reset")
        assert reply.is_streaming is False
        assert session.last_error == "Connection reset"
        assert session.conversation.streaming_index() is None

    @pytest.mark.asyncio()
    async def test_cancelled_send_closes_reply(self):
        client = FakeClient(ndjson(text_delta("never"), done()), ndjson(text_delta("ok"), done()))
        client.gates[0] = asyncio.Event()
        session = ChatSession(client)

        task = asyncio.create_task(session.send("first"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        reply = session.conversation[1]
        assert reply.is_streaming is False
        assert reply.content == format_error_message(CANCELLED)
        assert session.conversation.streaming_index() is None
        assert not session.is_busy

        assert await session.send("second") is True
        assert session.conversation[-1].content == "ok"
        session.conversation.reset()
        assert len(session.conversation) == 0


class TestConcurrency:
    @pytest.mark.asyncio()
    async def test_sends_are_serialized(self):
        client = FakeClient(ndjson(text_delta("One"), done()), ndjson(text_delta("Two"), done()))
        gate = asyncio.Event()
        client.gates[0] = gate
        session = ChatSession(client)

        first = asyncio.create_task(session.send("first"))
        await asyncio.sleep(0)
        second = asyncio.create_task(session.send("second"))
        await asyncio.sleep(0)

        assert session.is_busy
        assert [m.content for m in session.conversation.snapshot] == ["first", ""]

        gate.set()
        await asyncio.gather(first, second)

        assert [m.content for m in session.conversation.snapshot] == [
            "first",
            "One",
            "second",
            "Two",
        ]
        assert session.conversation.streaming_index() is None
        assert not session.is_busy

    @pytest.mark.asyncio()
    async def test_subflow_message_during_stream(self):
        client = FakeClient(ndjson(text_delta("Reply"), done()))
        client.gates[0] = gate = asyncio.Event()
        session = ChatSession(client)

        task = asyncio.create_task(session.send("hello"))
        await asyncio.sleep(0)
        notice = session.subflows.send_system_message("Upload finished")
        flow = await session.subflows.show_account_selection(["d1"], 2, accounts=[CHECKING])
        gate.set()
        await task

        messages = session.conversation.snapshot
        assert [m.role for m in messages] == ["user", "assistant", "system", "system"]
        assert messages[1].content == "Reply"
        assert messages[1].is_streaming is False
        assert messages[notice].content == "Upload finished"
        assert session.subflows.pending_flows() == [flow]


class TestGovernor:
    @pytest.mark.asyncio()
    async def test_blocks_after_ceiling(self):
        on_limit = MagicMock()
        client = FakeClient(*(ndjson(done()) for _ in range(3)))
        session = ChatSession(client, governor=RateGovernor(3, on_limit))

        results = [await session.send(f"q{i}") for i in range(4)]

        assert results == [True, True, True, False]
        assert len(client.requests) == 3
        assert len(session.conversation) == 6
        on_limit.assert_called_once()

    @pytest.mark.asyncio()
    async def test_failed_requests_still_count(self):
        client = FakeClient(TransportError("down"))
        session = ChatSession(client, governor=RateGovernor(1))
        await session.send("a")
        assert await session.send("b") is False

    @pytest.mark.asyncio()
    async def test_counted_before_waiting(self):
        client = FakeClient(ndjson(done()), ndjson(done()))
        client.gates[0] = gate = asyncio.Event()
        session = ChatSession(client, governor=RateGovernor(1))

        first = asyncio.create_task(session.send("a"))
        await asyncio.sleep(0)
        assert await session.send("b") is False

        gate.set()
        assert await first is True
        assert len(client.requests) == 1


class TestRefresh:
    @pytest.mark.asyncio()
    async def test_successful_categorization_triggers_refresh(self):
        on_refresh = MagicMock()
        client = FakeClient(
            ndjson(
                tool_call("categorize_transaction", {"transaction_id": "t1"}),
                tool_result("categorize_transaction", {"success": True}),
                text_delta("Done."),
                done(),
            )
        )
        session = ChatSession(client, on_refresh=on_refresh)
        await session.send("It was lunch")
        on_refresh.assert_called_once()

    @pytest.mark.asyncio()
    async def test_no_refresh_without_success(self):
        on_refresh = MagicMock()
        client = FakeClient(
            ndjson(
                tool_call("categorize_transaction"),
                tool_result("categorize_transaction", {"success": False}),
                done(),
            )
        )
        session = ChatSession(client, on_refresh=on_refresh)
        await session.send("x")
        on_refresh.assert_not_called()

    @pytest.mark.asyncio()
    async def test_no_refresh_on_error(self):
        on_refresh = MagicMock()
        client = FakeClient(
            ndjson(
                tool_call("categorize_transaction"),
                tool_result("categorize_transaction", {"success": True}),
                error("late failure"),
            )
        )
        session = ChatSession(client, on_refresh=on_refresh)
        await session.send("x")
        on_refresh.assert_not_called()


class TestFromSettings:
    def test_demo_mode_creates_governor(self, mock_settings):
        mock_settings.demo_mode = True
        session = ChatSession.from_settings(FakeClient())
        assert session.governor is not None
        assert session.governor.max_questions == 3
        assert session.user_id == "user-1"

    def test_no_governor_by_default(self, mock_settings):
        assert ChatSession.from_settings(FakeClient()).governor is None
