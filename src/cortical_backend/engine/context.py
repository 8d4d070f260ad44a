"""
Request context for prompts: time, client environment and server info.
"""

from __future__ import annotations

import platform
import socket
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from cortical_backend.engine.contract import render_contract


def parse_user_agent(user_agent: str) -> dict[str, str]:
    """Coarse browser and OS names from a User-Agent header."""
    browser, os_name = "Unknown", "Unknown"
    if "Chrome" in user_agent and "Chromium" not in user_agent:
        browser = "Chrome"
    elif "Firefox" in user_agent:
        browser = "Firefox"
    elif "Safari" in user_agent and "Chrome" not in user_agent:
        browser = "Safari"

    if "Windows NT" in user_agent:
        os_name = "Windows"
    elif "Mac OS X" in user_agent:
        os_name = "macOS"
    elif "Linux" in user_agent:
        os_name = "Linux"

    return {"name": browser, "os": os_name}


class ContextEnhancer:
    """Builds per-request context and the final system prompt."""

    def __init__(self, functions: list[dict[str, str]] | None = None):
        self.functions = functions
        self.system_info = {
            "platform": sys.platform,
            "arch": platform.machine() or "unknown",
            "python_version": platform.python_version(),
            "hostname": socket.gethostname(),
        }

    def enhance_request_context(
        self,
        headers: Mapping[str, str] | None = None,
        client_host: str | None = None,
        method: str | None = None,
        path: str | None = None,
    ) -> dict[str, Any]:
        headers = headers or {}
        user_agent = headers.get("user-agent", "")
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request": {
                "ip": client_host or "unknown",
                "user_agent": user_agent,
                "browser": parse_user_agent(user_agent),
                "host": headers.get("host"),
                "method": method or "WebSocket",
                "path": path or "N/A",
            },
            "system": self.system_info,
        }

    def generate_system_prompt(
        self,
        base_prompt: str,
        context: dict[str, Any],
        user: Mapping[str, Any] | None = None,
        rag_context: str | None = None,
    ) -> str:
        browser = context["request"]["browser"]
        system = context["system"]
        lines = [
            "SYSTEM CONTEXT (Current Session):",
            f"- Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"- User's Browser: {browser['name']} on {browser['os']}",
            f"- Server: {system['platform']} {system['arch']}",
        ]
        if user:
            lines.append(f"- User: {user.get('name') or user.get('id')} ({user.get('role', 'user')})")
        else:
            lines.append("- Anonymous Session")

        sections = ["\n".join(lines)]
        if rag_context:
            sections.append(f"RETRIEVED KNOWLEDGE:\n{rag_context}")
        sections.append(render_contract(self.functions))

        return f"{base_prompt}\n\n" + "\n\n".join(sections)
