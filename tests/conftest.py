"""
Shared fixtures: mock HTTP transports and scripted LLM backends.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from cortical_backend.engine.llm import LLMChunk
from cortical_backend.logging import LOGGER_NAME


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def ndjson(*records: dict[str, Any]) -> bytes:
    return "".join(json.dumps(r) + "\n" for r in records).encode()


class ScriptedBackend:
    """LLM backend replaying fixed chunks and recording what it was asked."""

    def __init__(self, chunks: list[LLMChunk] | None = None, completion: str = ""):
        self.chunks = chunks or []
        self.completion = completion
        self.stream_calls: list[tuple[str, str]] = []
        self.complete_calls: list[tuple[str, str]] = []
        self.messages_calls: list[list[dict[str, Any]]] = []

    async def complete(self, message: str, system: str) -> str:
        self.complete_calls.append((message, system))
        return self.completion

    async def stream(self, message: str, system: str) -> AsyncIterator[LLMChunk]:
        self.stream_calls.append((message, system))
        for chunk in self.chunks:
            yield chunk

    async def stream_messages(self, messages: list[dict[str, Any]]) -> AsyncIterator[LLMChunk]:
        self.messages_calls.append(messages)
        for chunk in self.chunks:
            yield chunk


@pytest.fixture(autouse=True)
def propagate_package_logs():
    """Undo configure_logging() so caplog keeps seeing package records."""
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def scripted_backend():
    return ScriptedBackend([LLMChunk(text="Hi"), LLMChunk(text=" there", done=True)])


@pytest.fixture
def spawn_counter(monkeypatch):
    """Counts calls to asyncio.create_subprocess_shell without spawning."""
    calls: list[str] = []

    async def fake_spawn(command, *args, **kwargs):
        calls.append(command)
        raise AssertionError(f"unexpected spawn: {command}")

    monkeypatch.setattr("asyncio.create_subprocess_shell", fake_spawn)
    return calls
