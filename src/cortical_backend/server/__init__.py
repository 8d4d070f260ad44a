"""HTTP and WebSocket surface for cortical-backend."""

from cortical_backend.server.app import ChatRequest, create_app
from cortical_backend.server.auth import ApiKeyAuthenticator, require_identity

__all__ = [
    "create_app",
    "ChatRequest",
    "ApiKeyAuthenticator",
    "require_identity",
]
