"""
Kind-specific function configuration.

One spec model per FunctionKind. Specs accept Python callables (when built
in code) or plain templates (when loaded from JSON), and both snake_case and
camelCase keys, so ``{"allowedCommands": ["ping"]}`` and
``CommandFunctionSpec(allowed_commands=["ping"])`` are equivalent.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from cortical_backend.core.datamodels import FunctionKind
from cortical_backend.core.exceptions import FunctionConfigError

DEFAULT_MAX_BUFFER = 1024 * 1024


class FunctionSpec(BaseModel):
    """Fields shared by every kind."""

    kind: ClassVar[FunctionKind]

    description: str | None = None
    parse_args: str | Callable[[str], Any] | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="ignore",
        frozen=True,
    )


class ApiFunctionSpec(FunctionSpec):
    """HTTP call. ``endpoint`` is a URL, a ``{args}`` template, or a callable."""

    kind: ClassVar[FunctionKind] = FunctionKind.API

    endpoint: str | Callable[[Any], str]
    method: str = "GET"
    headers: dict[str, str] = {}
    body: dict[str, Any] | list[Any] | str | Callable[[Any], Any] | None = None
    transform: Callable[[Any, Any], Any] | None = None
    timeout: float = 30.0
    quote_args: bool = True


class CommandFunctionSpec(FunctionSpec):
    """Shell command. Interpolated arguments are NOT escaped."""

    kind: ClassVar[FunctionKind] = FunctionKind.COMMAND

    command: str | Callable[[Any], str]
    allowed_commands: list[str] | None = None
    timeout: float = 10.0
    max_buffer: int = DEFAULT_MAX_BUFFER


class ScriptFunctionSpec(FunctionSpec):
    """In-process Python handler called as ``handler(args, capabilities)``."""

    kind: ClassVar[FunctionKind] = FunctionKind.SCRIPT

    handler: Callable[..., Any]


class WorkflowFunctionSpec(FunctionSpec):
    """Workflow webhook (n8n style)."""

    kind: ClassVar[FunctionKind] = FunctionKind.WORKFLOW

    endpoint: str | None = None
    webhook_id: str | None = None
    api_key: str | None = None
    timeout: float = 30.0


class RetrievalFunctionSpec(FunctionSpec):
    """Similarity query against a document store."""

    kind: ClassVar[FunctionKind] = FunctionKind.RETRIEVAL

    query: str | Callable[[Any], str] | None = None
    n_results: int = 5
    store: Any = None


class BrowserActionSpec(FunctionSpec):
    """Client-side action; ``field`` names the single payload key."""

    kind: ClassVar[FunctionKind] = FunctionKind.BROWSER

    action: str
    field: str


SPEC_TYPES: dict[FunctionKind, type[FunctionSpec]] = {
    FunctionKind.API: ApiFunctionSpec,
    FunctionKind.COMMAND: CommandFunctionSpec,
    FunctionKind.SCRIPT: ScriptFunctionSpec,
    FunctionKind.WORKFLOW: WorkflowFunctionSpec,
    FunctionKind.RETRIEVAL: RetrievalFunctionSpec,
    FunctionKind.BROWSER: BrowserActionSpec,
}


def coerce_kind(kind: FunctionKind | str | None) -> FunctionKind:
    """Convert a kind name to FunctionKind, rejecting unknown kinds."""
    if isinstance(kind, FunctionKind):
        return kind
    try:
        return FunctionKind(kind)
    except ValueError:
        raise FunctionConfigError(f"Unknown function type: {kind or '(none)'}") from None


def build_spec(kind: FunctionKind | str, definition: FunctionSpec | Mapping[str, Any]) -> FunctionSpec:
    """Validate a definition into the spec model for ``kind``."""
    kind = coerce_kind(kind)
    spec_type = SPEC_TYPES[kind]

    if isinstance(definition, FunctionSpec):
        if not isinstance(definition, spec_type):
            raise FunctionConfigError(
                f"{type(definition).__name__} cannot be registered as {kind.value}"
            )
        return definition

    if not isinstance(definition, Mapping):
        raise FunctionConfigError(f"Function definition must be a mapping, got {type(definition).__name__}")

    try:
        return spec_type.model_validate(dict(definition))
    except ValidationError as e:
        raise FunctionConfigError(f"Invalid {kind.value} function: {e}") from e
