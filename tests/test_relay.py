#!/usr/bin/env python3
"""
Tests for the Stream Relay: end-to-end request flows against scripted backends.
"""

import asyncio
import logging

import httpx
import pytest

from conftest import ScriptedBackend, mock_client
from cortical_backend.core import FunctionRegistry
from cortical_backend.core.exceptions import LLMBackendError
from cortical_backend.engine import (
    ContextEnhancer,
    DispatchCoordinator,
    FunctionCallDetector,
    StreamRelay,
)
from cortical_backend.engine.events import DoneEvent, TokenEvent
from cortical_backend.engine.llm import LLMChunk, OllamaBackend
from cortical_backend.engine.relay import (
    PROCESSING_STATUS,
    RESPONSE_TIMEOUT,
    RelaySession,
    RelayState,
)
from cortical_backend.engine.transport import RecordingSink
from cortical_backend.executors import ExecutorSettings


def make_relay(backend, registry=None, **kwargs):
    registry = registry or FunctionRegistry()
    return StreamRelay(
        FunctionCallDetector(registry),
        DispatchCoordinator(registry),
        backend,
        **kwargs,
    )


async def run(relay, message, **kwargs):
    sink = RecordingSink()
    session = await relay.handle(message, sink, **kwargs)
    return sink, session


def assert_single_terminal(events):
    """Exactly one done/error, and it is the last event."""
    terminal = [i for i, e in enumerate(events) if e["type"] in ("done", "error")]
    assert terminal == [len(events) - 1]


class FailingBackend(ScriptedBackend):
    async def stream(self, message, system):
        yield LLMChunk(text="partial")
        raise LLMBackendError("LLM stream interrupted: connection reset")


class StallingBackend(ScriptedBackend):
    async def stream(self, message, system):
        yield LLMChunk(text="thinking")
        await asyncio.sleep(10)
        yield LLMChunk(text="never", done=True)


class FakeStore:
    def __init__(self, documents):
        self.documents = documents

    async def query(self, text, n_results):
        return self.documents


# ============================================================================
# End-to-End Scenario Tests
# ============================================================================

class TestScenarios:
    """Tests for the four canonical request flows."""

    @pytest.mark.asyncio
    async def test_plain_chat_is_streamed(self, scripted_backend):
        sink, session = await run(make_relay(scripted_backend), "hello")

        assert sink.dicts() == [
            {"type": "token", "text": "Hi"},
            {"type": "token", "text": " there"},
            {"type": "done"},
        ]
        assert sink.closed
        assert session.state is RelayState.CLOSED
        assert scripted_backend.stream_calls[0][0] == "hello"

    @pytest.mark.asyncio
    async def test_browser_action(self, scripted_backend):
        sink, _ = await run(make_relay(scripted_backend), "FUNCTION:showAlert:Build complete")

        assert sink.dicts() == [
            {"type": "status", "text": PROCESSING_STATUS},
            {"type": "browser_action", "action": "alert", "data": {"message": "Build complete"}},
            {"type": "token", "text": 'Alert displayed: "Build complete"'},
            {"type": "done"},
        ]
        assert scripted_backend.stream_calls == []

    @pytest.mark.asyncio
    async def test_api_failure(self, scripted_backend):
        registry = FunctionRegistry(settings=ExecutorSettings(
            http_client=mock_client(lambda r: httpx.Response(500)),
        ))
        registry.register("api", "searchDuck", {"endpoint": "https://api.test/?q={args}"})

        sink, _ = await run(make_relay(scripted_backend, registry), "FUNCTION:searchDuck:weather")
        events = sink.dicts()

        assert events[0] == {"type": "status", "text": PROCESSING_STATUS}
        assert len(events) == 2
        assert events[1]["type"] == "error"
        assert "500" in events[1]["error"]
        assert not any(e["type"] == "done" for e in events)

    @pytest.mark.asyncio
    async def test_command_not_allowed(self, scripted_backend, spawn_counter):
        registry = FunctionRegistry(settings=ExecutorSettings(allow_commands=True))
        registry.register("command", "pingHost", {"command": "{args}", "allowedCommands": ["ping"]})

        sink, _ = await run(make_relay(scripted_backend, registry), "FUNCTION:pingHost:rm -rf /")
        events = sink.dicts()

        assert events[0]["type"] == "status"
        assert events[-1]["type"] == "error"
        assert "not allowed" in events[-1]["error"]
        assert_single_terminal(events)
        assert spawn_counter == []


# ============================================================================
# Relay Behavior Tests
# ============================================================================

class TestStreamRelay:
    """Tests for relay edge cases."""

    @pytest.mark.asyncio
    async def test_listing_result(self, scripted_backend):
        registry = FunctionRegistry(settings=ExecutorSettings(
            http_client=mock_client(lambda r: httpx.Response(200, json={"results": ["a", "b"]})),
        ))
        registry.register("api", "search", {"endpoint": "https://api.test/?q={args}"})

        sink, _ = await run(make_relay(scripted_backend, registry), "FUNCTION:search:x")
        assert sink.dicts()[1:] == [
            {"type": "search_results", "results": ["a", "b"], "totalResults": 2},
            {"type": "done"},
        ]

    @pytest.mark.asyncio
    async def test_unknown_function_is_forwarded(self, scripted_backend):
        sink, _ = await run(make_relay(scripted_backend), "FUNCTION:nothing:x")
        assert [e["type"] for e in sink.dicts()] == ["token", "token", "done"]
        assert scripted_backend.stream_calls[0][0] == "FUNCTION:nothing:x"

    @pytest.mark.asyncio
    async def test_backend_without_done_flag(self):
        backend = ScriptedBackend([LLMChunk("a"), LLMChunk("b")])
        sink, _ = await run(make_relay(backend), "hi")
        assert sink.dicts() == [
            {"type": "token", "text": "a"},
            {"type": "token", "text": "b"},
            {"type": "done"},
        ]

    @pytest.mark.asyncio
    async def test_empty_chunks_not_sent(self):
        backend = ScriptedBackend([LLMChunk(""), LLMChunk("x"), LLMChunk("", done=True)])
        sink, _ = await run(make_relay(backend), "hi")
        assert sink.dicts() == [{"type": "token", "text": "x"}, {"type": "done"}]

    @pytest.mark.asyncio
    async def test_backend_error_replaces_done(self):
        sink, session = await run(make_relay(FailingBackend()), "hi")
        events = sink.dicts()

        assert events[0] == {"type": "token", "text": "partial"}
        assert events[-1] == {"type": "error", "error": "LLM stream interrupted: connection reset"}
        assert_single_terminal(events)
        assert session.terminal_event.type == "error"

    @pytest.mark.asyncio
    async def test_timeout(self):
        relay = make_relay(StallingBackend(), stream_timeout=0.05)
        sink, _ = await run(relay, "hi")

        assert sink.dicts() == [
            {"type": "token", "text": "thinking"},
            {"type": "error", "error": RESPONSE_TIMEOUT},
        ]
        assert sink.closed

    @pytest.mark.asyncio
    async def test_timeout_kills_running_command(self, scripted_backend, monkeypatch):
        spawned = []
        real_spawn = asyncio.create_subprocess_shell

        async def spawn(command, *args, **kwargs):
            process = await real_spawn(command, *args, **kwargs)
            spawned.append(process)
            return process

        monkeypatch.setattr("asyncio.create_subprocess_shell", spawn)
        registry = FunctionRegistry(settings=ExecutorSettings(allow_commands=True))
        registry.register("command", "nap", {"command": "exec sleep 3", "timeout": 30})

        relay = make_relay(scripted_backend, registry, stream_timeout=0.3)
        sink, _ = await run(relay, "FUNCTION:nap:now")

        assert sink.dicts() == [
            {"type": "status", "text": PROCESSING_STATUS},
            {"type": "error", "error": RESPONSE_TIMEOUT},
        ]
        assert len(spawned) == 1
        assert spawned[0].returncode is not None

    @pytest.mark.asyncio
    async def test_backend_not_answering(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        backend = OllamaBackend(
            "http://ollama.test/api/generate", "gemma3:1b", timeout=0.05, client=mock_client(handler),
        )
        sink, session = await run(make_relay(backend), "hi")

        assert sink.dicts() == [{"type": "error", "error": "LLM backend did not respond within 0.05s"}]
        assert session.terminal_event.type == "error"
        assert sink.closed

    @pytest.mark.asyncio
    async def test_unencodable_result_becomes_error(self, scripted_backend):
        class Opaque:
            pass

        registry = FunctionRegistry(settings=ExecutorSettings(allow_scripts=True))

        @registry.script(name="opaque")
        def opaque(args, caps):
            return Opaque()

        sink, session = await run(make_relay(scripted_backend, registry), "FUNCTION:opaque:x")
        events = sink.dicts()

        assert [e["type"] for e in events] == ["status", "error"]
        assert "Cannot encode function_result event" in events[-1]["error"]
        assert session.events_sent == 2

    @pytest.mark.asyncio
    async def test_unknown_function_logged_as_chat(self, scripted_backend, caplog):
        with caplog.at_level(logging.DEBUG, logger="cortical_backend.engine.relay"):
            await run(make_relay(scripted_backend), "FUNCTION:nothing:x")
            await run(make_relay(scripted_backend), "hello")

        notes = [r for r in caplog.records if "names no registered function" in r.getMessage()]
        assert len(notes) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception(self):
        class BrokenBackend(ScriptedBackend):
            async def stream(self, message, system):
                raise ZeroDivisionError("division by zero")
                yield  # pragma: no cover

        sink, _ = await run(make_relay(BrokenBackend()), "hi")
        events = sink.dicts()
        assert len(events) == 1
        assert events[0]["type"] == "error"
        assert "division by zero" in events[0]["error"]

    @pytest.mark.asyncio
    async def test_system_prompt_passed_to_backend(self, scripted_backend):
        relay = make_relay(scripted_backend, system_prompt="You are helpful.")
        await run(relay, "hi")
        assert scripted_backend.stream_calls == [("hi", "You are helpful.")]

    @pytest.mark.asyncio
    async def test_enhanced_system_prompt(self, scripted_backend):
        enhancer = ContextEnhancer(functions=[{"name": "speak", "type": "browser", "description": "Say it"}])
        relay = make_relay(scripted_backend, enhancer=enhancer, system_prompt="BASE")

        await run(relay, "hi", user={"name": "Ada", "role": "admin"})

        system = scripted_backend.stream_calls[0][1]
        assert system.startswith("BASE\n\nSYSTEM CONTEXT (Current Session):")
        assert "- User: Ada (admin)" in system
        assert "- speak (browser): Say it" in system


# ============================================================================
# Retrieval Pre-step Tests
# ============================================================================

class TestRetrievalPreStep:
    """Tests for explicit retrieval calls feeding the prompt."""

    @pytest.mark.asyncio
    async def test_retrieved_documents_reach_prompt(self, scripted_backend):
        registry = FunctionRegistry()
        registry.register("retrieval", "askDocs", {"store": FakeStore(["Refunds take 5 days."])})

        sink, _ = await run(make_relay(scripted_backend, registry, system_prompt="BASE"), "FUNCTION:askDocs:refunds")

        assert [e.get("text") for e in sink.dicts()[:2]] == ["Retrieving knowledge...", "Knowledge retrieved."]
        assert sink.dicts()[-1] == {"type": "done"}
        message, system = scripted_backend.stream_calls[0]
        assert message == "FUNCTION:askDocs:refunds"
        assert "RETRIEVED KNOWLEDGE:\nRefunds take 5 days." in system

    @pytest.mark.asyncio
    async def test_retrieval_failure(self, scripted_backend):
        registry = FunctionRegistry()
        registry.register("rag", "askDocs", {})

        sink, _ = await run(make_relay(scripted_backend, registry), "FUNCTION:askDocs:refunds")

        assert sink.dicts() == [
            {"type": "status", "text": "Retrieving knowledge..."},
            {"type": "error", "error": "RAG Error: Retrieval store endpoint not configured"},
        ]
        assert scripted_backend.stream_calls == []


# ============================================================================
# Completion Detection Tests
# ============================================================================

class TestDetectInCompletion:
    """Tests for detecting calls in a non-streamed completion."""

    @pytest.mark.asyncio
    async def test_call_in_completion_is_dispatched(self):
        backend = ScriptedBackend(completion="FUNCTION:speak:hello")
        sink, _ = await run(make_relay(backend, detect_in_completion=True), "say hello")

        assert [e["type"] for e in sink.dicts()] == ["status", "browser_action", "token", "done"]
        assert backend.complete_calls[0][0] == "say hello"
        assert backend.stream_calls == []

    @pytest.mark.asyncio
    async def test_plain_completion_is_streamed(self):
        backend = ScriptedBackend(
            [LLMChunk("Just "), LLMChunk("chatting.", done=True)],
            completion="Just chatting.",
        )
        relay = make_relay(backend, detect_in_completion=True, system_prompt="SYS")
        sink, _ = await run(relay, "hi")

        assert sink.dicts() == [
            {"type": "token", "text": "Just "},
            {"type": "token", "text": "chatting."},
            {"type": "done"},
        ]
        assert backend.complete_calls == [("hi", "SYS")]
        assert backend.stream_calls == [("hi", "SYS")]


# ============================================================================
# Session / Streaming API Tests
# ============================================================================

class TestRelaySession:
    """Tests for the terminal-event guarantee and the iterator API."""

    @pytest.mark.asyncio
    async def test_nothing_after_terminal(self):
        sink = RecordingSink()
        session = RelaySession(sink)
        await session.emit(TokenEvent(text="a"))
        await session.terminate()
        await session.emit(TokenEvent(text="late"))
        await session.terminate()

        assert sink.events == [TokenEvent(text="a"), DoneEvent()]
        assert session.events_sent == 2

    @pytest.mark.asyncio
    async def test_stream_iterator(self, scripted_backend):
        relay = make_relay(scripted_backend)
        events = [event async for event in relay.stream("hello")]
        assert [e.to_dict() for e in events] == [
            {"type": "token", "text": "Hi"},
            {"type": "token", "text": " there"},
            {"type": "done"},
        ]

    @pytest.mark.asyncio
    async def test_messages_iterator(self, scripted_backend):
        messages = [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "FUNCTION:showAlert:hi"},
        ]
        relay = make_relay(scripted_backend)
        events = [event.to_dict() async for event in relay.stream_messages(messages)]

        assert events == [
            {"type": "token", "text": "Hi"},
            {"type": "token", "text": " there"},
            {"type": "done"},
        ]
        assert scripted_backend.messages_calls == [messages]
        assert scripted_backend.stream_calls == []

    @pytest.mark.asyncio
    async def test_messages_timeout(self):
        class SlowBackend(ScriptedBackend):
            async def stream_messages(self, messages):
                yield LLMChunk(text="thinking")
                await asyncio.sleep(10)

        relay = make_relay(SlowBackend(), stream_timeout=0.05)
        sink = RecordingSink()
        await relay.handle_messages([{"role": "user", "content": "hi"}], sink)

        assert sink.dicts() == [
            {"type": "token", "text": "thinking"},
            {"type": "error", "error": RESPONSE_TIMEOUT},
        ]
