"""
Dispatch Coordinator: runs a detected call and shapes its result into events.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any

from cortical_backend.core.datamodels import DetectedCall, DispatchResult
from cortical_backend.core.registry import FunctionRegistry
from cortical_backend.engine.events import (
    BrowserActionEvent,
    ErrorEvent,
    FunctionResultEvent,
    SearchResultsEvent,
    StreamEvent,
    TokenEvent,
)
from cortical_backend.logging import log_exception

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    """How the relay should present a result."""

    BROWSER_ACTION = "browser_action"
    LISTING = "listing"
    GENERIC = "generic"
    ERROR = "error"


def browser_action_confirmation(action: str, data: Any) -> str:
    """Chat text shown after a client-side action."""
    data = data if isinstance(data, dict) else {}
    if action == "alert":
        return f'Alert displayed: "{data.get("message")}"'
    if action == "openWindow":
        return f"Opening new tab: {data.get('url')}"
    if action == "modal":
        return f"Opening modal with: {data.get('url')}"
    if action == "speak":
        return f'Speaking: "{data.get("text")}"'
    return f"Browser action completed: {action}"


class DispatchCoordinator:
    """Looks up, executes and classifies function calls. No retries."""

    def __init__(self, registry: FunctionRegistry):
        self.registry = registry

    async def dispatch(self, call: DetectedCall) -> DispatchResult:
        entry = self.registry.get(call.function_name)
        if entry is None:
            logger.warning(f"Dispatch of unknown function '{call.function_name}'")
            return DispatchResult.fail(f"Function {call.function_name} not found")

        arguments = call.arguments
        if arguments is None:
            try:
                arguments = entry.parse_args(call.raw_arguments)
            except Exception as e:
                logger.warning(f"Argument parser for '{entry.name}' failed: {e}")
                return DispatchResult.fail(f"Invalid arguments for {entry.name}: {e}")

        start = time.perf_counter()
        try:
            result = await entry.execute(arguments)
        except Exception as e:
            # Executors convert their own errors; this covers custom executors
            message = log_exception(e, context=f"dispatching '{entry.name}'", logger=logger)
            result = DispatchResult.fail(message)
        elapsed = time.perf_counter() - start

        outcome = self.classify(result)
        logger.info(
            f"{entry.kind.value} function '{entry.name}' -> {outcome.value} in {elapsed * 1000:.1f}ms"
        )
        return result

    @staticmethod
    def classify(result: DispatchResult) -> DispatchOutcome:
        if not result.success:
            return DispatchOutcome.ERROR
        if result.is_browser_action:
            return DispatchOutcome.BROWSER_ACTION
        if result.is_listing:
            return DispatchOutcome.LISTING
        return DispatchOutcome.GENERIC

    def events_for(self, result: DispatchResult) -> list[StreamEvent]:
        """Events presenting a result, excluding the final ``done``."""
        outcome = self.classify(result)

        if outcome is DispatchOutcome.BROWSER_ACTION:
            return [
                BrowserActionEvent(action=result.browser_action, data=result.data),
                TokenEvent(text=browser_action_confirmation(result.browser_action, result.data)),
            ]
        if outcome is DispatchOutcome.LISTING:
            return [
                SearchResultsEvent(
                    results=result.results,
                    total_results=result.total_results,
                ),
            ]
        if outcome is DispatchOutcome.GENERIC:
            return [FunctionResultEvent(data=result.to_payload())]
        return [ErrorEvent(error=result.error or "Function failed")]
