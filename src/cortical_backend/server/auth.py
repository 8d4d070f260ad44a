"""
API-key authentication for the HTTP and WebSocket surface.

Keys are read from ``auth.api_keys``. When auth is enabled and no keys are
configured, an admin key and a ui key are generated at startup and logged.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader, APIKeyQuery

from cortical_backend.config import AuthConfig

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
api_key_query = APIKeyQuery(name="apiKey", auto_error=False)


def generate_api_key(prefix: str = "cai") -> str:
    return f"{prefix}_{secrets.token_hex(32)}"


class ApiKeyAuthenticator:
    """Maps API keys to identities ``{id, name, role}``."""

    def __init__(self, config: AuthConfig | None = None):
        config = config or AuthConfig()
        self.enabled = config.enabled
        self.keys: dict[str, dict[str, Any]] = {
            key: {"id": "api", "name": entry.name, "role": entry.role}
            for key, entry in config.api_keys.items()
        }

        if self.enabled and not self.keys and config.generate_keys:
            admin_key = generate_api_key("admin")
            ui_key = generate_api_key("ui")
            self.keys[admin_key] = {"id": "api", "name": "Admin Key", "role": "admin"}
            self.keys[ui_key] = {"id": "api", "name": "UI Key", "role": "ui"}
            logger.warning(f"Generated API keys - admin: {admin_key} ui: {ui_key}")

        if self.enabled and not self.keys:
            logger.warning("Authentication is enabled but no API keys are configured")

    def authenticate(self, api_key: str | None) -> dict[str, Any] | None:
        if not api_key:
            return None
        identity = self.keys.get(api_key)
        return dict(identity) if identity else None


async def require_identity(
    request: Request,
    header_key: Optional[str] = Depends(api_key_header),
    query_key: Optional[str] = Depends(api_key_query),
) -> dict[str, Any] | None:
    """Route dependency: resolve the caller, or 401 when auth is enabled."""
    authenticator: ApiKeyAuthenticator = request.app.state.auth
    if not authenticator.enabled:
        request.state.identity = None
        return None

    identity = authenticator.authenticate(header_key or query_key)
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    request.state.identity = identity
    return identity
