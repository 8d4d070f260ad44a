"""
Exception classes for the function-calling pipeline.
"""


class CorticalError(Exception):
    """Base exception for cortical-backend errors."""


class ConfigError(CorticalError):
    """Configuration could not be loaded or is invalid."""


class FunctionError(CorticalError):
    """Base exception for function-related errors."""


class FunctionNotFoundError(FunctionError):
    """Function not found in registry."""


class FunctionParseError(FunctionError):
    """Function arguments could not be parsed."""


class FunctionConfigError(FunctionError):
    """Function definition is invalid (unknown kind, missing fields)."""


class FunctionRegistryFrozenError(FunctionError):
    """Registration attempted after the registry was frozen."""


class ExecutorError(FunctionError):
    """Handler failed while producing a result."""


class SecurityDisabledError(ExecutorError):
    """Execution blocked by a global security flag."""


class CommandNotAllowedError(ExecutorError):
    """Command does not start with an allowed prefix."""


class CommandTimeoutError(ExecutorError):
    """Command exceeded its timeout."""


class OutputLimitExceededError(ExecutorError):
    """Command produced more output than its buffer allows."""


class RetrievalError(ExecutorError):
    """Document store is unavailable or misconfigured."""


class RelayError(CorticalError):
    """Stream relay failed at the transport level."""


class LLMBackendError(RelayError):
    """LLM backend unreachable or returned an error."""
