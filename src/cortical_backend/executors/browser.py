"""
Browser-action executor: describes an action for the client to perform.
"""

from __future__ import annotations

from typing import Any

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.specs import BrowserActionSpec
from cortical_backend.executors.base import Executor


class BrowserActionExecutor(Executor):
    """Pass-through: ``{field: args}`` tagged with the action name."""

    kind = FunctionKind.BROWSER
    spec: BrowserActionSpec

    async def _run(self, arguments: Any) -> DispatchResult:
        return DispatchResult.browser(self.spec.action, {self.spec.field: arguments})
