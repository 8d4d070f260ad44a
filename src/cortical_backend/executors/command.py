"""
Command executor: shell commands behind a global flag and a prefix allow-list.

The allow-list is a prefix check on the final command string, not an
escaping step. Definitions that interpolate arguments must sanitize them,
e.g. with a computed command::

    def ping_host(args):
        host = re.sub(r"[^A-Za-z0-9.-]", "", args)
        return f"ping -c 1 {host}"
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import (
    CommandNotAllowedError,
    CommandTimeoutError,
    ExecutorError,
    OutputLimitExceededError,
    SecurityDisabledError,
)
from cortical_backend.core.helpers import resolve_value
from cortical_backend.core.specs import CommandFunctionSpec
from cortical_backend.executors.base import Executor

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024


class CommandExecutor(Executor):
    """Runs a shell command and captures its output."""

    kind = FunctionKind.COMMAND
    spec: CommandFunctionSpec

    def _failure_details(self) -> dict[str, Any]:
        command = self.spec.command
        return {"command": "dynamic" if callable(command) else command}

    def is_allowed(self, command: str) -> bool:
        allowed = self.spec.allowed_commands
        if allowed is None:
            return True
        return any(command.startswith(prefix) for prefix in allowed)

    async def _run(self, arguments: Any) -> DispatchResult:
        if not self.settings.allow_commands:
            raise SecurityDisabledError("Command execution is disabled for security")

        command = str(resolve_value(self.spec.command, arguments))
        if not self.is_allowed(command):
            raise CommandNotAllowedError(f"Command not allowed: {command}")

        logger.info(f"Running command for '{self.name}': {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(process),
                timeout=self.spec.timeout,
            )
        except asyncio.TimeoutError:
            raise CommandTimeoutError(
                f"Command timed out after {self.spec.timeout:g}s: {command}"
            ) from None
        finally:
            # Also reached on cancellation of the whole request
            if process.returncode is None:
                await self._kill(process)

        if process.returncode != 0:
            detail = stderr.strip()
            message = f"Command failed with exit code {process.returncode}: {command}"
            raise ExecutorError(f"{message}\n{detail}" if detail else message)

        return DispatchResult.ok({"stdout": stdout, "stderr": stderr, "command": command})

    async def _communicate(self, process: asyncio.subprocess.Process) -> tuple[str, str]:
        stdout, stderr = await asyncio.gather(
            self._read_capped(process.stdout),
            self._read_capped(process.stderr),
        )
        await process.wait()
        return stdout, stderr

    async def _read_capped(self, stream: asyncio.StreamReader | None) -> str:
        """Read a pipe to EOF, failing once it exceeds max_buffer bytes."""
        if stream is None:
            return ""
        limit = self.spec.max_buffer
        chunks: list[bytes] = []
        size = 0
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                raise OutputLimitExceededError(f"Command output exceeded {limit} bytes")
            chunks.append(chunk)
        return b"".join(chunks).decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
