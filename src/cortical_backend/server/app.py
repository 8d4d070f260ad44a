"""
FastAPI application: SSE chat streams, WebSocket chat, listing and health.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from cortical_backend import __version__
from cortical_backend.engine.events import ErrorEvent, StreamEvent, sse_frame
from cortical_backend.engine.transport import WebSocketSink
from cortical_backend.framework import CorticalFramework
from cortical_backend.server.auth import ApiKeyAuthenticator, require_identity

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    message: str


def _client_host(connection: Request | WebSocket) -> str | None:
    return connection.client.host if connection.client else None


def _ws_message(raw: str) -> str | None:
    """Accept ``{"message": "..."}`` frames, or plain text."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return raw.strip() or None
    if isinstance(frame, dict):
        message = frame.get("message")
        return message if isinstance(message, str) and message.strip() else None
    if isinstance(frame, str):
        return frame.strip() or None
    return None


def _completion_messages(body: bytes) -> list[dict[str, Any]] | None:
    """The ``messages`` list of a completions request, or None when absent."""
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError:
        return None
    messages = payload.get("messages") if isinstance(payload, dict) else None
    if not isinstance(messages, list) or not all(isinstance(m, dict) for m in messages):
        return None
    return messages


def _event_stream(events: AsyncIterator[StreamEvent]) -> StreamingResponse:
    """SSE response for a relay event iterator."""

    async def frames() -> AsyncGenerator[str]:
        async for event in events:
            yield sse_frame(event)

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def create_app(framework: CorticalFramework) -> FastAPI:
    """Build the app for a framework; freezes its registry."""
    framework.freeze()
    config = framework.config

    # Interactive docs are not served
    app = FastAPI(
        title=f"{config.app.name} API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.framework = framework
    app.state.auth = ApiKeyAuthenticator(config.auth)

    if config.server.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=[
                "Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization", "X-API-Key",
            ],
        )

    @app.post("/api/v1/chat/stream")
    async def chat_stream(
        payload: ChatRequest,
        request: Request,
        identity: Optional[dict[str, Any]] = Depends(require_identity),
    ) -> StreamingResponse:
        """Stream the reply to one message as Server-Sent Events."""
        context = framework.enhancer.enhance_request_context(
            request.headers, _client_host(request), request.method, request.url.path,
        )
        return _event_stream(framework.relay.stream(payload.message, context, identity))

    @app.post("/api/v1/chat/completions")
    async def chat_completions(
        request: Request,
        identity: Optional[dict[str, Any]] = Depends(require_identity),
    ) -> Response:
        """Stream the backend's reply to an OpenAI-style ``messages`` list."""
        messages = _completion_messages(await request.body())
        if messages is None:
            return JSONResponse(status_code=400, content={"error": "Messages array is required."})
        return _event_stream(framework.relay.stream_messages(messages))

    @app.get("/api/v1/functions")
    async def list_functions(identity: Optional[dict[str, Any]] = Depends(require_identity)) -> dict[str, Any]:
        return framework.list_functions()

    @app.get("/api/v1/config")
    async def public_config(identity: Optional[dict[str, Any]] = Depends(require_identity)) -> dict[str, Any]:
        return {"success": True, "config": framework.public_config()}

    @app.get("/api/v1/health")
    async def health() -> dict[str, Any]:
        return framework.health(auth_enabled=app.state.auth.enabled)

    @app.get("/examples")
    async def examples() -> dict[str, Any]:
        return {"success": True, "examples": framework.examples()}

    @app.websocket("/ws")
    async def websocket_chat(websocket: WebSocket) -> None:
        """One JSON event per frame; ``{"type": "processed"}`` ends each request."""
        authenticator: ApiKeyAuthenticator = app.state.auth
        identity = None
        if authenticator.enabled:
            identity = authenticator.authenticate(
                websocket.headers.get("x-api-key") or websocket.query_params.get("apiKey")
            )
            if identity is None:
                await websocket.close(code=1008)
                return

        await websocket.accept()
        context = framework.enhancer.enhance_request_context(
            websocket.headers, _client_host(websocket), "WebSocket", websocket.url.path,
        )
        sink = WebSocketSink(websocket)
        logger.debug(f"WebSocket client connected: {_client_host(websocket)}")

        try:
            while True:
                message = _ws_message(await websocket.receive_text())
                if message is None:
                    await sink.send(ErrorEvent(error="Message is required"))
                    await sink.close()
                    continue
                await framework.relay.handle(message, sink, context, identity)
        except WebSocketDisconnect:
            logger.debug(f"WebSocket client disconnected: {_client_host(websocket)}")

    return app
