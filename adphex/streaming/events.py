"""Chat stream event types.

Each NDJSON line of a ``/api/chat`` response is one ``{type, data}`` object.
Known types validate into a closed discriminated union; any other ``type``
becomes an ``UnknownEvent`` that consumers ignore, so the server can add
event types without breaking older clients.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TextDeltaData(_Payload):
    text: str


class ToolCallData(_Payload):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    reasoning: str | None = None

    @field_validator("args", mode="before")
    @classmethod
    def _none_args(cls, value: Any) -> Any:
        return {} if value is None else value


class ToolResultData(_Payload):
    name: str
    result: Any = None
    duration: str | None = None
    result_count: int | None = Field(default=None, alias="resultCount")

    @field_validator("duration", mode="before")
    @classmethod
    def _numeric_duration(cls, value: Any) -> Any:
        # Older servers sent a bare millisecond count
        if isinstance(value, int | float) and not isinstance(value, bool):
            return f"{value}ms"
        return value


class ChartConfigData(_Payload):
    config: dict[str, Any]


class ErrorData(_Payload):
    message: str = "Unknown error"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextDeltaEvent(_Event):
    type: Literal["text_delta"]
    data: TextDeltaData


class ToolCallEvent(_Event):
    type: Literal["tool_call"]
    data: ToolCallData


class ToolResultEvent(_Event):
    type: Literal["tool_result"]
    data: ToolResultData


class ChartConfigEvent(_Event):
    type: Literal["chart_config"]
    data: ChartConfigData


class DoneEvent(_Event):
    type: Literal["done"]
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(_Event):
    type: Literal["error"]
    data: ErrorData = Field(default_factory=ErrorData)


class UnknownEvent(_Event):
    """An event whose ``type`` this client does not know."""

    type: str
    data: Any = None


Event = Annotated[
    Union[  # noqa: UP007
        TextDeltaEvent,
        ToolCallEvent,
        ToolResultEvent,
        ChartConfigEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

KNOWN_EVENT_TYPES = frozenset(
    {"text_delta", "tool_call", "tool_result", "chart_config", "done", "error"}
)

TERMINAL_EVENT_TYPES = frozenset({"done", "error"})

_event_adapter: TypeAdapter[Any] = TypeAdapter(Event)


def parse_event(payload: dict[str, Any]) -> Event | UnknownEvent:
    """Validate a decoded JSON object into an event.

    Args:
        payload: One decoded NDJSON object.

    Returns:
        The typed event, or ``UnknownEvent`` for unrecognized types.

    Raises:
        pydantic.ValidationError: A known type with a malformed ``data``.
    """
    event_type = payload.get("type")
    if event_type not in KNOWN_EVENT_TYPES:
        return UnknownEvent(type=str(event_type), data=payload.get("data"))
    if payload.get("data") is None:
        # ``{"type": "done"}`` is sent without data
        payload = {**payload, "data": {}}
    return _event_adapter.validate_python(payload)  # type: ignore[no-any-return]
