"""
Helper functions for function definitions: argument parsers and templates.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

from cortical_backend.core.exceptions import FunctionConfigError, FunctionParseError

ArgParser = Callable[[str], Any]

_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def is_valid_name(name: str) -> bool:
    """Check that a function name can appear in a FUNCTION:<name>:<args> call."""
    return bool(name) and bool(_NAME_RE.match(name))


def parse_text(raw: str) -> str:
    """Default parser: the raw argument text, trimmed."""
    return (raw or "").strip()


def parse_json(raw: str) -> Any:
    """Parse the argument text as JSON."""
    text = (raw or "").strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise FunctionParseError(f"Invalid JSON arguments: {e}") from e


def parse_list(raw: str) -> list[str]:
    """Split comma or whitespace separated arguments."""
    return [item for item in re.split(r"[,\s]+", (raw or "").strip()) if item]


ARG_PARSERS: dict[str, ArgParser] = {
    "text": parse_text,
    "json": parse_json,
    "list": parse_list,
}


def resolve_parser(parser: str | ArgParser | None) -> ArgParser:
    """Resolve a parser given by name or callable, defaulting to parse_text."""
    if parser is None:
        return parse_text
    if callable(parser):
        return parser
    try:
        return ARG_PARSERS[parser]
    except KeyError:
        raise FunctionConfigError(
            f"Unknown argument parser '{parser}' (expected one of {sorted(ARG_PARSERS)})"
        ) from None


def render_template(
    template: str,
    args: Any,
    quote: Callable[[str], str] | None = None,
) -> str:
    """Fill a string template from parsed arguments.

    ``{args}`` is the whole parsed value; when the arguments are a dict its
    keys are also available, e.g. ``"ping -c 3 {host}"``.
    """
    values: dict[str, Any] = {"args": args}
    if isinstance(args, dict):
        values.update(args)
    if quote is not None:
        # Containers stay indexable, e.g. {args[id]}
        values = {
            k: v if isinstance(v, (dict, list)) else quote(str(v))
            for k, v in values.items()
        }
    try:
        return template.format(**values)
    except (KeyError, IndexError, TypeError) as e:
        raise FunctionConfigError(f"Template '{template}' references missing argument {e}") from e


def resolve_value(
    value: str | Callable[[Any], Any],
    args: Any,
    quote: Callable[[str], str] | None = None,
) -> Any:
    """Resolve a static/template string or a callable against the arguments."""
    if callable(value):
        return value(args)
    return render_template(value, args, quote)


def render_structure(obj: Any, args: Any) -> Any:
    """Recursively render string templates inside dicts and lists."""
    if isinstance(obj, str):
        return render_template(obj, args)
    if isinstance(obj, dict):
        return {k: render_structure(v, args) for k, v in obj.items()}
    if isinstance(obj, list):
        return [render_structure(v, args) for v in obj]
    return obj
