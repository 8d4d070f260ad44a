"""
Script executor: in-process Python handlers with explicit capabilities.

A handler is called as ``handler(args, capabilities)`` and may be sync or
async. ``capabilities`` is the only thing it is handed; this is a calling
convention, not a security boundary, because the handler still runs in the
server process with normal Python access. Keep ``allow_scripts`` off for
untrusted definitions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Callable

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import SecurityDisabledError
from cortical_backend.core.specs import ScriptFunctionSpec
from cortical_backend.executors.base import Executor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptCapabilities:
    """What a script handler may use: its args, a logger, timers, buffers."""

    args: Any
    logger: logging.Logger

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)

    @staticmethod
    def buffer(data: str | bytes | bytearray, encoding: str = "utf-8") -> bytes:
        if isinstance(data, str):
            return data.encode(encoding)
        return bytes(data)


class ScriptExecutor(Executor):
    """Calls a Python handler registered in configuration or code."""

    kind = FunctionKind.SCRIPT
    spec: ScriptFunctionSpec

    def capabilities(self, arguments: Any) -> ScriptCapabilities:
        return ScriptCapabilities(
            args=arguments,
            logger=logging.getLogger(f"cortical_backend.scripts.{self.name}"),
        )

    async def _run(self, arguments: Any) -> DispatchResult:
        if not self.settings.allow_scripts:
            raise SecurityDisabledError("Script execution is disabled for security")

        try:
            result = self.spec.handler(arguments, self.capabilities(arguments))
            if inspect.isawaitable(result):
                result = await result
        except (Exception, SystemExit) as e:
            logger.warning(f"Script '{self.name}' raised {type(e).__name__}: {e}")
            return DispatchResult.fail(str(e) or type(e).__name__, stack=traceback.format_exc())

        return DispatchResult.ok({"result": result})
