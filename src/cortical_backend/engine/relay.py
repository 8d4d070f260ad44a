"""
Stream Relay: turns one chat message into an ordered event stream.

Per request the relay moves through

    IDLE -> AWAITING_FIRST_DECISION -> FORWARDING | DISPATCHING -> TERMINATING -> CLOSED

AWAITING_FIRST_DECISION runs the detector on the message (and, when
``detect_in_completion`` is on, on a non-streamed completion). FORWARDING
opens a token stream from the backend and relays it; DISPATCHING runs the
detected call. Every request ends with exactly one ``done``, or an
``error`` in its place, and nothing is sent after it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Coroutine, Mapping

from cortical_backend.core.datamodels import DetectedCall, FunctionKind
from cortical_backend.core.exceptions import RelayError
from cortical_backend.engine.context import ContextEnhancer
from cortical_backend.engine.detector import FunctionCallDetector
from cortical_backend.engine.dispatch import DispatchCoordinator
from cortical_backend.engine.events import (
    DoneEvent,
    ErrorEvent,
    StatusEvent,
    StreamEvent,
    TokenEvent,
)
from cortical_backend.engine.llm import LLMBackend, LLMChunk
from cortical_backend.engine.transport import EventSink, QueueSink
from cortical_backend.logging import log_exception

logger = logging.getLogger(__name__)

PROCESSING_STATUS = "Processing your request..."
RETRIEVING_STATUS = "Retrieving knowledge..."
RETRIEVED_STATUS = "Knowledge retrieved."
RESPONSE_TIMEOUT = "Response timeout"

DEFAULT_STREAM_TIMEOUT = 1200.0


class RelayState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_DECISION = "awaiting_first_decision"
    FORWARDING = "forwarding"
    DISPATCHING = "dispatching"
    TERMINATING = "terminating"
    CLOSED = "closed"


class RelaySession:
    """One request's view of the sink; drops anything sent after termination."""

    def __init__(self, sink: EventSink, request_id: str | None = None):
        self.sink = sink
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.state = RelayState.IDLE
        self.events_sent = 0
        self.terminal_event: StreamEvent | None = None

    @property
    def closed(self) -> bool:
        return self.state in (RelayState.TERMINATING, RelayState.CLOSED)

    def transition(self, state: RelayState) -> None:
        logger.debug(f"[{self.request_id}] {self.state.value} -> {state.value}")
        self.state = state

    def _check_encodable(self, event: StreamEvent) -> None:
        # Encoding errors must surface here, before the sink counts the event
        try:
            event.to_dict()
        except (TypeError, ValueError) as e:
            raise RelayError(f"Cannot encode {event.type} event: {e}") from e

    async def emit(self, event: StreamEvent) -> None:
        if self.closed:
            logger.debug(f"[{self.request_id}] Dropping {event.type} event after termination")
            return
        self._check_encodable(event)
        await self.sink.send(event)
        self.events_sent += 1

    async def terminate(self, event: StreamEvent | None = None) -> None:
        """Send the terminal event and close the sink; later calls are no-ops."""
        if self.closed:
            return
        self.transition(RelayState.TERMINATING)
        self.terminal_event = event or DoneEvent()
        try:
            await self.sink.send(self.terminal_event)
            self.events_sent += 1
        finally:
            self.transition(RelayState.CLOSED)
            await self.sink.close()


class StreamRelay:
    """Drives detection, dispatch and backend streaming for chat messages."""

    def __init__(
        self,
        detector: FunctionCallDetector,
        coordinator: DispatchCoordinator,
        backend: LLMBackend,
        enhancer: ContextEnhancer | None = None,
        system_prompt: str = "",
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
        detect_in_completion: bool = False,
    ):
        self.detector = detector
        self.coordinator = coordinator
        self.backend = backend
        self.enhancer = enhancer
        self.system_prompt = system_prompt
        self.stream_timeout = stream_timeout
        self.detect_in_completion = detect_in_completion

    async def handle(
        self,
        message: str,
        sink: EventSink,
        context: dict[str, Any] | None = None,
        user: Mapping[str, Any] | None = None,
    ) -> RelaySession:
        """Process one message, writing every event to ``sink``."""
        session = RelaySession(sink)
        await self._supervise(session, self._run(session, message, context, user))
        return session

    async def handle_messages(self, messages: list[dict[str, Any]], sink: EventSink) -> RelaySession:
        """Relay the backend's reply to a whole conversation.

        Messages go to the backend as given. There is no call detection, no
        dispatch and no system prompt from configuration.
        """
        session = RelaySession(sink)
        await self._supervise(session, self._forward_messages(session, messages))
        return session

    async def _supervise(self, session: RelaySession, work: Awaitable[None]) -> None:
        """Run one request under the overall timeout; always ends the session."""
        try:
            await asyncio.wait_for(work, self.stream_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{session.request_id}] No completion within {self.stream_timeout:g}s")
            await session.terminate(ErrorEvent(error=RESPONSE_TIMEOUT))
        except RelayError as e:
            logger.warning(f"[{session.request_id}] {e}")
            await session.terminate(ErrorEvent(error=str(e)))
        except asyncio.CancelledError:
            logger.info(f"[{session.request_id}] Request cancelled")
            session.transition(RelayState.CLOSED)
            raise
        except Exception as e:
            error_message = log_exception(e, context="stream relay", logger=logger)
            await session.terminate(ErrorEvent(error=error_message))
        else:
            await session.terminate()

    async def stream(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        user: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield the events for one message as they are produced."""
        sink = QueueSink()
        async for event in self._drain(sink, self.handle(message, sink, context, user)):
            yield event

    async def stream_messages(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        """Yield the events of ``handle_messages`` as they are produced."""
        sink = QueueSink()
        async for event in self._drain(sink, self.handle_messages(messages, sink)):
            yield event

    @staticmethod
    async def _drain(sink: QueueSink, work: Coroutine[Any, Any, RelaySession]) -> AsyncIterator[StreamEvent]:
        task = asyncio.create_task(work)
        try:
            async for event in sink:
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    def build_system_prompt(
        self,
        context: dict[str, Any] | None,
        user: Mapping[str, Any] | None,
        rag_context: str | None,
    ) -> str:
        if self.enhancer is None:
            if rag_context:
                return f"{self.system_prompt}\n\nRETRIEVED KNOWLEDGE:\n{rag_context}"
            return self.system_prompt
        context = context or self.enhancer.enhance_request_context()
        return self.enhancer.generate_system_prompt(self.system_prompt, context, user, rag_context)

    async def _run(
        self,
        session: RelaySession,
        message: str,
        context: dict[str, Any] | None,
        user: Mapping[str, Any] | None,
    ) -> None:
        session.transition(RelayState.AWAITING_FIRST_DECISION)
        call = self.detector.detect(message)
        if call is None and self.detector.is_candidate(message):
            logger.debug(f"[{session.request_id}] Call-shaped message names no registered function; treating as chat")

        rag_context = None
        if call is not None and call.kind is FunctionKind.RETRIEVAL:
            rag_context = await self._retrieve(session, call)
            if rag_context is None:
                return
            call = None

        system = self.build_system_prompt(context, user, rag_context)

        if call is None and self.detect_in_completion:
            completion = await self.backend.complete(message, system)
            call = self.detector.detect(completion)
            if call is None:
                logger.debug(f"[{session.request_id}] No call in completion; streaming the reply")

        if call is not None:
            await self._dispatch(session, call)
        else:
            await self._forward(session, message, system)

    async def _retrieve(self, session: RelaySession, call: DetectedCall) -> str | None:
        """Run an explicit retrieval call; None means the request has ended."""
        await session.emit(StatusEvent(text=RETRIEVING_STATUS))
        result = await self.coordinator.dispatch(call)
        if not result.success:
            await session.terminate(ErrorEvent(error=f"RAG Error: {result.error}"))
            return None
        await session.emit(StatusEvent(text=RETRIEVED_STATUS))
        return "\n\n".join(str(doc) for doc in result.results or [])

    async def _dispatch(self, session: RelaySession, call: DetectedCall) -> None:
        session.transition(RelayState.DISPATCHING)
        await session.emit(StatusEvent(text=PROCESSING_STATUS))

        result = await self.coordinator.dispatch(call)
        for event in self.coordinator.events_for(result):
            if event.is_terminal:
                await session.terminate(event)
                return
            await session.emit(event)
        await session.terminate()

    async def _forward(self, session: RelaySession, message: str, system: str) -> None:
        await self._relay_chunks(session, self.backend.stream(message, system))

    async def _forward_messages(self, session: RelaySession, messages: list[dict[str, Any]]) -> None:
        await self._relay_chunks(session, self.backend.stream_messages(messages))

    async def _relay_chunks(self, session: RelaySession, stream: AsyncIterator[LLMChunk]) -> None:
        session.transition(RelayState.FORWARDING)
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                if chunk.text:
                    await session.emit(TokenEvent(text=chunk.text))
                if chunk.done:
                    break
        await session.terminate()
