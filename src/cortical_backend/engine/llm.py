"""
LLM backend clients.

Two wire formats are supported:
- Ollama-style generate API: NDJSON records ``{"response": "...", "done": bool}``
- OpenAI-style chat completions: SSE ``data: {...}`` lines ending with
  ``data: [DONE]``
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Protocol

import httpx

from cortical_backend.core.exceptions import LLMBackendError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 900.0


@dataclass(frozen=True)
class LLMChunk:
    """One decoded unit of a streamed reply."""

    text: str = ""
    done: bool = False


def build_prompt(message: str, system: str) -> str:
    """Single-string prompt for completion-style backends."""
    return f'{system}\n\nUser says: "{message}"\n\nAssistant responds: '


def flatten_messages(messages: list[dict[str, Any]]) -> str:
    """Fold a chat message list into one prompt for completion-style backends.

    The first system message leads, then all user turns and all assistant
    turns, each group joined by newlines.
    """
    def contents(role: str) -> list[str]:
        return [str(m.get("content") or "") for m in messages if m.get("role") == role]

    system = next(iter(contents("system")), "")
    user = "\n".join(contents("user"))
    assistant = "\n".join(contents("assistant"))

    prompt = system
    if user:
        prompt += f'\n\nUser says: "{user}"'
    if assistant:
        prompt += f'\n\nAssistant responds: "{assistant}"'
    return prompt + "\n\nAssistant responds: "


class LineBuffer:
    """Splits a chunked text stream into complete lines.

    A trailing partial line is kept until the next chunk or ``flush()``.
    """

    def __init__(self):
        self._buffer = ""

    def feed_lines(self, data: str | bytes) -> list[str]:
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        self._buffer += data
        *lines, self._buffer = self._buffer.split("\n")
        return [line for line in lines if line.strip()]

    def flush_lines(self) -> list[str]:
        rest, self._buffer = self._buffer, ""
        return [rest] if rest.strip() else []


class NDJSONDecoder(LineBuffer):
    """Decodes newline-delimited JSON records; malformed lines are skipped."""

    def _parse(self, lines: list[str]) -> list[dict[str, Any]]:
        records = []
        for line in lines:
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed stream record: {e}: {line[:200]!r}")
                continue
            if isinstance(record, dict):
                records.append(record)
            else:
                logger.warning(f"Skipping non-object stream record: {line[:200]!r}")
        return records

    def feed(self, data: str | bytes) -> list[dict[str, Any]]:
        return self._parse(self.feed_lines(data))

    def flush(self) -> list[dict[str, Any]]:
        return self._parse(self.flush_lines())


class LLMBackend(Protocol):
    async def complete(self, message: str, system: str) -> str: ...

    def stream(self, message: str, system: str) -> AsyncIterator[LLMChunk]: ...

    def stream_messages(self, messages: list[dict[str, Any]]) -> AsyncIterator[LLMChunk]: ...


class HTTPBackend:
    """Shared HTTP plumbing: client handling, opening timeout, status check."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint
        self.model = model
        self.timeout = timeout
        self.api_key = api_key
        self.client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def _open(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        """Send the request and wait for the response headers."""
        request = client.build_request(
            "POST",
            self.endpoint,
            json=payload,
            headers=self._headers(),
            # Reads are bounded by the relay's overall timeout
            timeout=httpx.Timeout(self.timeout, read=None),
        )
        try:
            response = await asyncio.wait_for(client.send(request, stream=True), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise LLMBackendError(f"LLM backend did not respond within {self.timeout:g}s") from None
        except httpx.HTTPError as e:
            raise LLMBackendError(f"LLM backend unreachable: {e}") from e

        if not response.is_success:
            await response.aclose()
            raise LLMBackendError(f"LLM API error: {response.status_code}")
        return response

    async def _read_json(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await self._open(client, payload)
            try:
                body = await response.aread()
            finally:
                await response.aclose()
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise LLMBackendError(f"LLM returned invalid JSON: {e}") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(endpoint={self.endpoint!r}, model={self.model!r})"


class OllamaBackend(HTTPBackend):
    """Ollama ``/api/generate`` style backend."""

    def _payload(self, prompt: str, stream: bool) -> dict[str, Any]:
        return {"model": self.model, "prompt": prompt, "stream": stream}

    async def complete(self, message: str, system: str) -> str:
        data = await self._read_json(self._payload(build_prompt(message, system), stream=False))
        return str(data.get("response") or "")

    def stream(self, message: str, system: str) -> AsyncIterator[LLMChunk]:
        return self._stream(self._payload(build_prompt(message, system), stream=True))

    def stream_messages(self, messages: list[dict[str, Any]]) -> AsyncIterator[LLMChunk]:
        return self._stream(self._payload(flatten_messages(messages), stream=True))

    async def _stream(self, payload: dict[str, Any]) -> AsyncIterator[LLMChunk]:
        async with self._client() as client:
            response = await self._open(client, payload)
            decoder = NDJSONDecoder()
            try:
                async for text in response.aiter_text():
                    for record in decoder.feed(text):
                        chunk = LLMChunk(text=str(record.get("response") or ""), done=bool(record.get("done")))
                        yield chunk
                        if chunk.done:
                            return
                for record in decoder.flush():
                    yield LLMChunk(text=str(record.get("response") or ""), done=bool(record.get("done")))
            except httpx.HTTPError as e:
                raise LLMBackendError(f"LLM stream interrupted: {e}") from e
            finally:
                await response.aclose()


class OpenAIChatBackend(HTTPBackend):
    """OpenAI ``/v1/chat/completions`` style backend."""

    def _payload(self, messages: list[dict[str, Any]], stream: bool) -> dict[str, Any]:
        return {"model": self.model, "messages": messages, "stream": stream}

    @staticmethod
    def _messages(message: str, system: str) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": message},
        ]

    @staticmethod
    def _parse_line(line: str) -> LLMChunk | None:
        line = line.strip()
        if line == "data: [DONE]":
            return LLMChunk(done=True)
        if not line.startswith("data: "):
            return None
        try:
            parsed = json.loads(line[6:])
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed SSE record: {e}: {line[:200]!r}")
            return None
        if not isinstance(parsed, dict):
            logger.warning(f"Skipping non-object SSE record: {line[:200]!r}")
            return None
        choices = parsed.get("choices") or []
        if not choices:
            return None
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            logger.warning(f"Skipping SSE record with malformed choices: {line[:200]!r}")
            return None
        delta = choices[0].get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        return LLMChunk(text=content) if isinstance(content, str) and content else None

    async def complete(self, message: str, system: str) -> str:
        data = await self._read_json(self._payload(self._messages(message, system), stream=False))
        try:
            return str(data["choices"][0]["message"]["content"] or "")
        except (KeyError, IndexError, TypeError):
            raise LLMBackendError("LLM returned an unexpected completion shape") from None

    def stream(self, message: str, system: str) -> AsyncIterator[LLMChunk]:
        return self._stream(self._payload(self._messages(message, system), stream=True))

    def stream_messages(self, messages: list[dict[str, Any]]) -> AsyncIterator[LLMChunk]:
        return self._stream(self._payload(messages, stream=True))

    async def _stream(self, payload: dict[str, Any]) -> AsyncIterator[LLMChunk]:
        async with self._client() as client:
            response = await self._open(client, payload)
            lines = LineBuffer()
            try:
                async for text in response.aiter_text():
                    for line in lines.feed_lines(text):
                        chunk = self._parse_line(line)
                        if chunk is None:
                            continue
                        yield chunk
                        if chunk.done:
                            return
                for line in lines.flush_lines():
                    chunk = self._parse_line(line)
                    if chunk is not None:
                        yield chunk
            except httpx.HTTPError as e:
                raise LLMBackendError(f"LLM stream interrupted: {e}") from e
            finally:
                await response.aclose()
