"""
Data models for the function registry and dispatch pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from cortical_backend.executors.base import Executor


class FunctionKind(str, Enum):
    """Closed set of handler kinds."""

    API = "api"
    COMMAND = "command"
    SCRIPT = "script"
    WORKFLOW = "workflow"
    RETRIEVAL = "retrieval"
    BROWSER = "browser"

    @classmethod
    def _missing_(cls, value: object) -> FunctionKind | None:
        # Type names used by older configuration files
        aliases = {"n8n": cls.WORKFLOW, "rag": cls.RETRIEVAL, "browser_action": cls.BROWSER}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class DispatchResult(BaseModel):
    """Outcome of running one executor.

    A success carries at most one of ``browser_action`` (with ``data`` as the
    action payload), ``results`` (a listing), or plain ``data``.
    """

    success: bool
    data: Any = None
    browser_action: str | None = None
    results: list[Any] | None = None
    total_results: int | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def ok(cls, data: Any = None, **details: Any) -> DispatchResult:
        return cls(success=True, data=data, details=details)

    @classmethod
    def browser(cls, action: str, data: dict[str, Any] | None = None) -> DispatchResult:
        return cls(success=True, browser_action=action, data=data or {})

    @classmethod
    def listing(
        cls,
        results: list[Any],
        total: int | None = None,
        **details: Any,
    ) -> DispatchResult:
        return cls(
            success=True,
            results=list(results),
            total_results=len(results) if total is None else total,
            details=details,
        )

    @classmethod
    def fail(cls, message: str, **details: Any) -> DispatchResult:
        return cls(success=False, error=message, details=details)

    @classmethod
    def from_payload(cls, payload: Any) -> DispatchResult:
        """Classify a raw handler return value.

        - ``{"success": False, "error": ...}`` is a failure
        - a ``browserAction`` key is a client-side action
        - a ``results`` list is a listing
        - anything else is a generic payload
        """
        if isinstance(payload, DispatchResult):
            return payload
        if not isinstance(payload, dict):
            return cls.ok(payload)

        if payload.get("success") is False and payload.get("error"):
            details = {k: v for k, v in payload.items() if k not in ("success", "error")}
            return cls.fail(str(payload["error"]), **details)

        if payload.get("browserAction"):
            return cls.browser(payload["browserAction"], payload.get("data") or {})

        if isinstance(payload.get("results"), list):
            details = {
                k: v for k, v in payload.items()
                if k not in ("success", "results", "totalResults")
            }
            return cls.listing(payload["results"], payload.get("totalResults"), **details)

        return cls.ok(payload)

    @property
    def is_browser_action(self) -> bool:
        return self.success and self.browser_action is not None

    @property
    def is_listing(self) -> bool:
        return self.success and self.results is not None

    def to_payload(self) -> dict[str, Any]:
        """Render the wire object sent to clients."""
        if not self.success:
            return {"success": False, "error": self.error, **self.details}
        if self.browser_action is not None:
            return {"success": True, "browserAction": self.browser_action, "data": self.data}
        if self.results is not None:
            return {
                "success": True,
                "results": self.results,
                "totalResults": self.total_results,
                **self.details,
            }
        if isinstance(self.data, dict):
            return {"success": True, **self.details, **self.data}
        if self.data is None:
            return {"success": True, **self.details}
        return {"success": True, "result": self.data, **self.details}


@dataclass(frozen=True)
class DetectedCall:
    """A function call found in a text blob."""

    function_name: str
    raw_arguments: str
    arguments: Any = None
    kind: FunctionKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "functionName": self.function_name,
            "rawArguments": self.raw_arguments,
        }


class FunctionDefinition(BaseModel):
    """Registry entry for a single function."""

    name: str
    kind: FunctionKind
    description: str = ""
    parse_args: Callable[[str], Any] = Field(exclude=True)
    executor: Any = Field(exclude=True)
    spec: Any = Field(default=None, exclude=True)

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    async def execute(self, arguments: Any) -> DispatchResult:
        executor: Executor = self.executor
        return await executor.execute(arguments)

    def info(self) -> dict[str, str]:
        """Listing entry: name, type and description."""
        return {"name": self.name, "type": self.kind.value, "description": self.description}
