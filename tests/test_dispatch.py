#!/usr/bin/env python3
"""
Tests for the Dispatch Coordinator.
"""

import pytest

from cortical_backend.core import DetectedCall, DispatchResult, FunctionRegistry
from cortical_backend.engine.dispatch import (
    DispatchCoordinator,
    DispatchOutcome,
    browser_action_confirmation,
)
from cortical_backend.engine.events import (
    BrowserActionEvent,
    ErrorEvent,
    FunctionResultEvent,
    SearchResultsEvent,
    TokenEvent,
)
from cortical_backend.executors import ExecutorSettings


@pytest.fixture
def registry():
    registry = FunctionRegistry(settings=ExecutorSettings(allow_scripts=True))

    @registry.script(name="add", parse_args="list")
    def add(args, caps):
        return sum(int(n) for n in args)

    @registry.script(name="lookup", parse_args="json")
    def lookup(args, caps):
        return {"found": args["id"]}

    return registry


@pytest.fixture
def coordinator(registry):
    return DispatchCoordinator(registry)


# ============================================================================
# Confirmation Text Tests
# ============================================================================

class TestBrowserActionConfirmation:
    """Tests for the chat text that follows a browser action."""

    @pytest.mark.parametrize("action,data,expected", [
        ("alert", {"message": "Build complete"}, 'Alert displayed: "Build complete"'),
        ("openWindow", {"url": "https://example.com"}, "Opening new tab: https://example.com"),
        ("modal", {"url": "https://example.com/x"}, "Opening modal with: https://example.com/x"),
        ("speak", {"text": "hello"}, 'Speaking: "hello"'),
        ("vibrate", {}, "Browser action completed: vibrate"),
    ])
    def test_confirmation(self, action, data, expected):
        assert browser_action_confirmation(action, data) == expected


# ============================================================================
# Classification Tests
# ============================================================================

class TestClassify:
    """Tests for result classification and event shaping."""

    def test_classify(self):
        assert DispatchCoordinator.classify(DispatchResult.fail("x")) is DispatchOutcome.ERROR
        assert DispatchCoordinator.classify(DispatchResult.browser("alert", {})) is DispatchOutcome.BROWSER_ACTION
        assert DispatchCoordinator.classify(DispatchResult.listing([])) is DispatchOutcome.LISTING
        assert DispatchCoordinator.classify(DispatchResult.ok({"a": 1})) is DispatchOutcome.GENERIC

    def test_events_for_browser_action(self, coordinator):
        events = coordinator.events_for(DispatchResult.browser("alert", {"message": "Build complete"}))
        assert events == [
            BrowserActionEvent(action="alert", data={"message": "Build complete"}),
            TokenEvent(text='Alert displayed: "Build complete"'),
        ]

    def test_events_for_listing(self, coordinator):
        events = coordinator.events_for(DispatchResult.listing(["a", "b"]))
        assert events == [SearchResultsEvent(results=["a", "b"], total_results=2)]
        assert events[0].to_dict() == {"type": "search_results", "results": ["a", "b"], "totalResults": 2}

    def test_events_for_generic(self, coordinator):
        events = coordinator.events_for(DispatchResult.ok({"temperature": 21}))
        assert events == [FunctionResultEvent(data={"success": True, "temperature": 21})]

    def test_events_for_failure(self, coordinator):
        """Test a failure is exactly one error event and no done."""
        events = coordinator.events_for(DispatchResult.fail("HTTP 500: Internal Server Error"))
        assert events == [ErrorEvent(error="HTTP 500: Internal Server Error")]


# ============================================================================
# Dispatch Tests
# ============================================================================

class TestDispatch:
    """Tests for DispatchCoordinator.dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_parses_raw_arguments(self, coordinator):
        result = await coordinator.dispatch(DetectedCall("add", "1, 2, 3"))
        assert result.data == {"result": 6}

    @pytest.mark.asyncio
    async def test_dispatch_uses_parsed_arguments(self, coordinator):
        result = await coordinator.dispatch(DetectedCall("lookup", "ignored", arguments={"id": 9}))
        assert result.data == {"result": {"found": 9}}

    @pytest.mark.asyncio
    async def test_unknown_function(self, coordinator):
        result = await coordinator.dispatch(DetectedCall("nothing", "x"))
        assert not result.success
        assert result.error == "Function nothing not found"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, coordinator):
        result = await coordinator.dispatch(DetectedCall("lookup", "{broken"))
        assert not result.success
        assert result.error.startswith("Invalid arguments for lookup")

    @pytest.mark.asyncio
    async def test_builtin_browser_action(self, coordinator):
        result = await coordinator.dispatch(DetectedCall("openWindow", "https://example.com"))
        assert result.to_payload() == {
            "success": True,
            "browserAction": "openWindow",
            "data": {"url": "https://example.com"},
        }

    @pytest.mark.asyncio
    async def test_executor_escape_becomes_failure(self, registry):
        """Test an executor that raises still yields a failure result."""
        class Exploding:
            async def execute(self, arguments):
                raise RuntimeError("boom")

        entry = registry.get("add")
        registry._functions["add"] = entry.model_copy(update={"executor": Exploding()})

        result = await DispatchCoordinator(registry).dispatch(DetectedCall("add", "1"))
        assert not result.success
        assert "boom" in result.error
