"""
Event sinks: where the relay writes events for one request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol

from cortical_backend.engine.events import StreamEvent

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def send(self, event: StreamEvent) -> None: ...

    async def close(self) -> None: ...


class RecordingSink:
    """Keeps every event in memory; used by the CLI and in tests."""

    def __init__(self):
        self.events: list[StreamEvent] = []
        self.closed = False

    async def send(self, event: StreamEvent) -> None:
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True

    def dicts(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self.events]


class QueueSink:
    """Bridges a producer task to an async iterator.

    Writes never block (the queue is unbounded); ``close()`` ends iteration.
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    async def send(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class WebSocketSink:
    """Sends each event as one JSON frame. Closing leaves the socket open."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, event: StreamEvent) -> None:
        await self.websocket.send_json(event.to_dict())

    async def close(self) -> None:
        # One socket carries many requests; the ack frame marks the end instead
        await self.websocket.send_json({"type": "processed"})
