"""
Engine module for the cortical_backend package.

Provides function-call detection, dispatch, LLM backends and the stream relay.
"""

from cortical_backend.engine.context import ContextEnhancer
from cortical_backend.engine.contract import FUNCTION_CALLING_RULES, render_contract
from cortical_backend.engine.detector import DEFAULT_FUNCTION_PATTERN, FunctionCallDetector
from cortical_backend.engine.dispatch import (
    DispatchCoordinator,
    DispatchOutcome,
    browser_action_confirmation,
)
from cortical_backend.engine.events import (
    BrowserActionEvent,
    DoneEvent,
    ErrorEvent,
    FunctionResultEvent,
    SearchResultsEvent,
    StatusEvent,
    StreamEvent,
    TokenEvent,
    parse_event,
    sse_frame,
)
from cortical_backend.engine.llm import (
    LLMBackend,
    LLMChunk,
    NDJSONDecoder,
    OllamaBackend,
    OpenAIChatBackend,
)
from cortical_backend.engine.relay import RelaySession, RelayState, StreamRelay
from cortical_backend.engine.transport import EventSink, QueueSink, RecordingSink, WebSocketSink

__all__ = [
    # Detection and dispatch
    "FunctionCallDetector",
    "DEFAULT_FUNCTION_PATTERN",
    "DispatchCoordinator",
    "DispatchOutcome",
    "browser_action_confirmation",
    # Relay
    "StreamRelay",
    "RelaySession",
    "RelayState",
    # Events
    "StreamEvent",
    "TokenEvent",
    "StatusEvent",
    "FunctionResultEvent",
    "SearchResultsEvent",
    "BrowserActionEvent",
    "ErrorEvent",
    "DoneEvent",
    "parse_event",
    "sse_frame",
    # Sinks
    "EventSink",
    "QueueSink",
    "RecordingSink",
    "WebSocketSink",
    # LLM backends
    "LLMBackend",
    "LLMChunk",
    "NDJSONDecoder",
    "OllamaBackend",
    "OpenAIChatBackend",
    # Prompting
    "ContextEnhancer",
    "FUNCTION_CALLING_RULES",
    "render_contract",
]
