"""
Executor base class and shared settings.

Every executor turns parsed arguments into a DispatchResult and never
raises: ExecutorError subclasses become failures with their message, and
anything unexpected is logged with its traceback first.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, ClassVar

import httpx

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import ExecutorError
from cortical_backend.core.specs import FunctionSpec
from cortical_backend.logging import log_exception

logger = logging.getLogger(__name__)


@dataclass
class ExecutorSettings:
    """Process-wide settings shared by all executors."""

    allow_commands: bool = False
    allow_scripts: bool = False
    workflow_endpoint: str | None = None
    retrieval_endpoint: str | None = None
    retrieval_collection: str | None = None
    http_client: httpx.AsyncClient | None = None


class Executor(ABC):
    """Runs one function kind."""

    kind: ClassVar[FunctionKind]

    def __init__(self, name: str, spec: FunctionSpec, settings: ExecutorSettings | None = None):
        self.name = name
        self.spec = spec
        self.settings = settings or ExecutorSettings()

    async def execute(self, arguments: Any) -> DispatchResult:
        """Run the handler, converting every error into a failure result."""
        try:
            return await self._run(arguments)
        except ExecutorError as e:
            logger.info(f"{self.kind.value} function '{self.name}' failed: {e}")
            return DispatchResult.fail(str(e), **self._failure_details())
        except Exception as e:
            message = log_exception(e, context=f"{self.kind.value} function '{self.name}'", logger=logger)
            return DispatchResult.fail(message, **self._failure_details())

    @abstractmethod
    async def _run(self, arguments: Any) -> DispatchResult:
        """Produce a result; may raise."""

    def _failure_details(self) -> dict[str, Any]:
        """Extra keys attached to failure payloads."""
        return {}

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a short-lived one when none is set."""
        if self.settings.http_client is not None:
            yield self.settings.http_client
            return
        async with httpx.AsyncClient(follow_redirects=True) as client:
            yield client

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
