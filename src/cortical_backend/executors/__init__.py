"""
Handler executors, one per FunctionKind.
"""

from __future__ import annotations

from cortical_backend.core.datamodels import FunctionKind
from cortical_backend.core.specs import FunctionSpec
from cortical_backend.executors.api import ApiExecutor
from cortical_backend.executors.base import Executor, ExecutorSettings
from cortical_backend.executors.browser import BrowserActionExecutor
from cortical_backend.executors.command import CommandExecutor
from cortical_backend.executors.retrieval import (
    ChromaDocumentStore,
    DocumentStore,
    RetrievalExecutor,
)
from cortical_backend.executors.script import ScriptCapabilities, ScriptExecutor
from cortical_backend.executors.workflow import WorkflowExecutor

EXECUTOR_TYPES: dict[FunctionKind, type[Executor]] = {
    FunctionKind.API: ApiExecutor,
    FunctionKind.COMMAND: CommandExecutor,
    FunctionKind.SCRIPT: ScriptExecutor,
    FunctionKind.WORKFLOW: WorkflowExecutor,
    FunctionKind.RETRIEVAL: RetrievalExecutor,
    FunctionKind.BROWSER: BrowserActionExecutor,
}

# Adding a FunctionKind without an executor fails at import time
_missing = set(FunctionKind) - set(EXECUTOR_TYPES)
if _missing:
    raise RuntimeError(f"No executor for kinds: {sorted(k.value for k in _missing)}")


def build_executor(name: str, spec: FunctionSpec, settings: ExecutorSettings | None = None) -> Executor:
    """Create the executor for a validated spec."""
    return EXECUTOR_TYPES[spec.kind](name, spec, settings)


__all__ = [
    "EXECUTOR_TYPES",
    "build_executor",
    "Executor",
    "ExecutorSettings",
    "ApiExecutor",
    "CommandExecutor",
    "ScriptExecutor",
    "ScriptCapabilities",
    "WorkflowExecutor",
    "RetrievalExecutor",
    "DocumentStore",
    "ChromaDocumentStore",
    "BrowserActionExecutor",
]
