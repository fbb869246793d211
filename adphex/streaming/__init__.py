"""Streaming module — decode and reduce the NDJSON chat protocol.

Provides independently testable components: the line decoder, the typed
event union, the serial tool-call ledger and the pure event reducer.
"""

from adphex.streaming.decoder import LineBuffer, decode_stream, parse_line
from adphex.streaming.events import Event, UnknownEvent, parse_event
from adphex.streaming.ledger import ToolCallLedger
from adphex.streaming.reducer import Reduction, StreamState, format_error_message, reduce

__all__ = [
    "Event",
    "LineBuffer",
    "Reduction",
    "StreamState",
    "ToolCallLedger",
    "UnknownEvent",
    "decode_stream",
    "format_error_message",
    "parse_event",
    "parse_line",
    "reduce",
]
