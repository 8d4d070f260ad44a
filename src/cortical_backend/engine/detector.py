"""
Function-call detection in free text.

A call is a whole (trimmed) text of the form ``FUNCTION:<name>:<arguments>``.
The arguments run to the end of the text, so they may contain colons and
newlines; a call embedded inside a longer message is not detected.
"""

from __future__ import annotations

import logging
import re

from cortical_backend.core.datamodels import DetectedCall
from cortical_backend.core.registry import FunctionRegistry

logger = logging.getLogger(__name__)

DEFAULT_FUNCTION_PATTERN = r"^FUNCTION:(\w+):(.+)$"


def compile_pattern(pattern: str | re.Pattern[str] | None = None) -> re.Pattern[str]:
    """Compile a function-call pattern; the argument group spans newlines."""
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern or DEFAULT_FUNCTION_PATTERN, re.DOTALL)


class FunctionCallDetector:
    """Finds a registered function call in a text blob.

    Unknown names and argument parser failures are not errors: the text is
    treated as plain chat and the reason is logged.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        pattern: str | re.Pattern[str] | None = None,
    ):
        self.registry = registry
        self.pattern = compile_pattern(pattern)

    def _match(self, text: str | None) -> re.Match[str] | None:
        if not text:
            return None
        return self.pattern.fullmatch(text.strip())

    def is_candidate(self, text: str | None) -> bool:
        """True when the text has the call shape, registered or not."""
        return self._match(text) is not None

    def detect(self, text: str | None) -> DetectedCall | None:
        match = self._match(text)
        if match is None:
            return None

        name, raw_arguments = match.group(1), match.group(2)
        entry = self.registry.get(name)
        if entry is None:
            logger.debug(f"Ignoring call to unregistered function '{name}'")
            return None

        try:
            arguments = entry.parse_args(raw_arguments)
        except Exception as e:
            logger.warning(f"Argument parser for '{name}' failed: {e}")
            return None

        return DetectedCall(
            function_name=name,
            raw_arguments=raw_arguments,
            arguments=arguments,
            kind=entry.kind,
        )
