"""
Stream events sent to clients, and their SSE framing.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StreamEvent(BaseModel):
    """Base for all events; ``type`` is the wire discriminator."""

    type: str

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_TYPES

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TokenEvent(StreamEvent):
    type: Literal["token"] = "token"
    text: str


class StatusEvent(StreamEvent):
    type: Literal["status"] = "status"
    text: str


class FunctionResultEvent(StreamEvent):
    type: Literal["function_result"] = "function_result"
    data: dict[str, Any]


class SearchResultsEvent(StreamEvent):
    type: Literal["search_results"] = "search_results"
    results: list[Any]
    total_results: int = Field(alias="totalResults")


class BrowserActionEvent(StreamEvent):
    type: Literal["browser_action"] = "browser_action"
    action: str
    data: Any = None


class ErrorEvent(StreamEvent):
    type: Literal["error"] = "error"
    error: str


class DoneEvent(StreamEvent):
    type: Literal["done"] = "done"


Event = Annotated[
    Union[
        TokenEvent,
        StatusEvent,
        FunctionResultEvent,
        SearchResultsEvent,
        BrowserActionEvent,
        ErrorEvent,
        DoneEvent,
    ],
    Field(discriminator="type"),
]

TERMINAL_TYPES = frozenset({"done", "error"})

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


def parse_event(data: dict[str, Any] | str) -> StreamEvent:
    """Build an event from its wire form (dict or JSON text)."""
    if isinstance(data, str):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)


def sse_frame(event: StreamEvent) -> str:
    """Render one Server-Sent-Events frame: ``data: <json>\\n\\n``."""
    return f"data: {json.dumps(event.to_dict())}\n\n"
