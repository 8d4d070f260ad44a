"""
Function Registry: the table of callable functions and their executors.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Callable, Iterator

from cortical_backend.core.datamodels import FunctionDefinition, FunctionKind
from cortical_backend.core.exceptions import FunctionConfigError, FunctionRegistryFrozenError
from cortical_backend.core.helpers import is_valid_name, resolve_parser
from cortical_backend.core.specs import (
    BrowserActionSpec,
    FunctionSpec,
    ScriptFunctionSpec,
    build_spec,
    coerce_kind,
)
from cortical_backend.executors import ExecutorSettings, build_executor

logger = logging.getLogger(__name__)

# name -> (action, payload key, description)
BUILTIN_BROWSER_ACTIONS: dict[str, tuple[str, str, str]] = {
    "showAlert": ("alert", "message", "Show an alert dialog in the browser"),
    "openWindow": ("openWindow", "url", "Open a URL in a new browser tab"),
    "showModal": ("modal", "url", "Show a URL inside a modal dialog"),
    "speak": ("speak", "text", "Read text aloud using speech synthesis"),
}


class FunctionRegistry:
    """Registry for managing functions.

    Registration is last-write-wins. Once ``freeze()`` has been called (the
    framework does this before serving) any further registration raises
    FunctionRegistryFrozenError.
    """

    def __init__(self, settings: ExecutorSettings | None = None, builtins: bool = True):
        self.settings = settings or ExecutorSettings()
        self._functions: dict[str, FunctionDefinition] = {}
        self._frozen = False

        if builtins:
            for name, (action, field, description) in BUILTIN_BROWSER_ACTIONS.items():
                self.register(
                    FunctionKind.BROWSER,
                    name,
                    BrowserActionSpec(action=action, field=field, description=description),
                )

    def register(
        self,
        kind: FunctionKind | str,
        name: str,
        definition: FunctionSpec | Mapping[str, Any],
    ) -> FunctionDefinition:
        """Insert or replace the function ``name``.

        ``definition`` is a spec model or a mapping validated into the spec
        for ``kind``; camelCase keys from JSON configuration are accepted.
        """
        if self._frozen:
            raise FunctionRegistryFrozenError(f"Cannot register '{name}': registry is frozen")
        if not is_valid_name(name):
            raise FunctionConfigError(
                f"Invalid function name '{name}': use letters, digits and underscores only"
            )

        kind = coerce_kind(kind)
        spec = build_spec(kind, definition)
        entry = FunctionDefinition(
            name=name,
            kind=kind,
            description=spec.description or "",
            parse_args=resolve_parser(spec.parse_args),
            executor=build_executor(name, spec, self.settings),
            spec=spec,
        )

        if name in self._functions:
            logger.info(f"Replacing function '{name}' ({self._functions[name].kind.value} -> {kind.value})")
        else:
            logger.info(f"Registered {kind.value} function '{name}'")
        self._functions[name] = entry
        return entry

    def register_all(self, functions: Mapping[str, FunctionSpec | Mapping[str, Any]]) -> None:
        """Register a configuration table of ``{name: definition}``.

        Mapping definitions name their kind under ``type`` (or ``kind``).
        """
        for name, definition in functions.items():
            if isinstance(definition, FunctionSpec):
                kind: Any = definition.kind
            elif isinstance(definition, Mapping):
                kind = definition.get("type") or definition.get("kind")
            else:
                raise FunctionConfigError(
                    f"Function '{name}' must be a mapping or spec, got {type(definition).__name__}"
                )
            self.register(kind, name, definition)

    def script(
        self,
        fn: Callable | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        parse_args: str | Callable[[str], Any] | None = None,
    ) -> Callable:
        """
        Register a Python function as a script-kind handler.

        Usage:
            @registry.script
            def calculate_stats(args, caps): ...

            @registry.script(name="calculateStats", parse_args="list")
            def calculate_stats(args, caps): ...
        """
        def decorator(func: Callable) -> Callable:
            doc = (func.__doc__ or "").strip().split("\n")[0]
            self.register(
                FunctionKind.SCRIPT,
                name or func.__name__,
                ScriptFunctionSpec(
                    handler=func,
                    description=description or doc or None,
                    parse_args=parse_args,
                ),
            )
            return func

        if fn is not None:
            return decorator(fn)
        return decorator

    def get(self, name: str) -> FunctionDefinition | None:
        return self._functions.get(name)

    def list(self) -> list[dict[str, str]]:
        """Listing entries ``{name, type, description}`` in registration order."""
        return [entry.info() for entry in self._functions.values()]

    def names(self) -> list[str]:
        return list(self._functions)

    def freeze(self) -> Mapping[str, FunctionDefinition]:
        """Stop accepting registrations and return a read-only view."""
        if not self._frozen:
            self._frozen = True
            logger.debug(f"Registry frozen with {len(self._functions)} functions")
        return MappingProxyType(self._functions)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[FunctionDefinition]:
        return iter(self._functions.values())

    def __len__(self) -> int:
        return len(self._functions)
