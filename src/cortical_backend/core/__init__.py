"""
Core module for the cortical_backend package.

Provides the Function Registry, function specs and the data models shared by
the detection, dispatch and relay pipeline.
"""

from cortical_backend.core.datamodels import (
    DetectedCall,
    DispatchResult,
    FunctionDefinition,
    FunctionKind,
)
from cortical_backend.core.exceptions import (
    CommandNotAllowedError,
    CommandTimeoutError,
    ConfigError,
    CorticalError,
    ExecutorError,
    FunctionConfigError,
    FunctionError,
    FunctionNotFoundError,
    FunctionParseError,
    FunctionRegistryFrozenError,
    LLMBackendError,
    OutputLimitExceededError,
    RelayError,
    RetrievalError,
    SecurityDisabledError,
)
from cortical_backend.core.helpers import ARG_PARSERS, parse_json, parse_list, parse_text
from cortical_backend.core.registry import BUILTIN_BROWSER_ACTIONS, FunctionRegistry
from cortical_backend.core.specs import (
    ApiFunctionSpec,
    BrowserActionSpec,
    CommandFunctionSpec,
    FunctionSpec,
    RetrievalFunctionSpec,
    ScriptFunctionSpec,
    WorkflowFunctionSpec,
)

__all__ = [
    # Registry
    "FunctionRegistry",
    "BUILTIN_BROWSER_ACTIONS",
    # Models
    "FunctionKind",
    "FunctionDefinition",
    "DetectedCall",
    "DispatchResult",
    # Specs
    "FunctionSpec",
    "ApiFunctionSpec",
    "CommandFunctionSpec",
    "ScriptFunctionSpec",
    "WorkflowFunctionSpec",
    "RetrievalFunctionSpec",
    "BrowserActionSpec",
    # Exceptions
    "CorticalError",
    "ConfigError",
    "FunctionError",
    "FunctionNotFoundError",
    "FunctionParseError",
    "FunctionConfigError",
    "FunctionRegistryFrozenError",
    "ExecutorError",
    "SecurityDisabledError",
    "CommandNotAllowedError",
    "CommandTimeoutError",
    "OutputLimitExceededError",
    "RetrievalError",
    "RelayError",
    "LLMBackendError",
    # Helpers
    "ARG_PARSERS",
    "parse_text",
    "parse_json",
    "parse_list",
]
