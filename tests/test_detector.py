#!/usr/bin/env python3
"""
Tests for function-call detection.
"""

import logging

import pytest

from cortical_backend.core import FunctionKind, FunctionRegistry
from cortical_backend.engine.detector import (
    DEFAULT_FUNCTION_PATTERN,
    FunctionCallDetector,
    compile_pattern,
)


@pytest.fixture
def registry():
    registry = FunctionRegistry()
    registry.register("api", "searchDuck", {"endpoint": "https://x.test/?q={args}"})
    registry.register("api", "lookup", {"endpoint": "https://x.test/{args[id]}", "parseArgs": "json"})
    return registry


@pytest.fixture
def detector(registry):
    return FunctionCallDetector(registry)


# ============================================================================
# Pattern Tests
# ============================================================================

class TestPattern:
    """Tests for the call pattern."""

    def test_default_pattern(self):
        assert compile_pattern().pattern == DEFAULT_FUNCTION_PATTERN

    def test_compiled_pattern_passthrough(self):
        pattern = compile_pattern(r"^CALL (\w+) (.+)$")
        assert compile_pattern(pattern) is pattern


# ============================================================================
# Detection Tests
# ============================================================================

class TestDetect:
    """Tests for FunctionCallDetector.detect."""

    def test_plain_text(self, detector):
        assert detector.detect("hello") is None
        assert detector.detect("") is None
        assert detector.detect(None) is None

    @pytest.mark.parametrize("name", ["showAlert", "openWindow", "showModal", "speak", "searchDuck"])
    def test_registered_names(self, detector, name):
        """Test every registered name is detected with its raw arguments."""
        call = detector.detect(f"FUNCTION:{name}:some argument text")
        assert call is not None
        assert call.function_name == name
        assert call.raw_arguments == "some argument text"

    def test_outer_whitespace_trimmed(self, detector):
        call = detector.detect("  \n FUNCTION:showAlert:Build complete \n")
        assert call.function_name == "showAlert"
        assert call.raw_arguments == "Build complete"
        assert call.arguments == "Build complete"
        assert call.kind is FunctionKind.BROWSER

    def test_arguments_may_contain_colons(self, detector):
        call = detector.detect("FUNCTION:openWindow:https://example.com:8443/path")
        assert call.raw_arguments == "https://example.com:8443/path"

    def test_arguments_may_span_lines(self, detector):
        call = detector.detect("FUNCTION:speak:line one\nline two")
        assert call.raw_arguments == "line one\nline two"

    @pytest.mark.parametrize("name", ["nothing", "deleteEverything", "show_alert"])
    def test_unknown_name_falls_through(self, detector, name):
        """Test calls to unregistered functions are not detected."""
        assert detector.detect(f"FUNCTION:{name}:x") is None

    def test_unknown_name_logged_at_debug(self, detector, caplog):
        with caplog.at_level(logging.DEBUG, logger="cortical_backend.engine.detector"):
            detector.detect("FUNCTION:nothing:x")
        assert any(r.levelno == logging.DEBUG and "nothing" in r.message for r in caplog.records)

    def test_embedded_call_not_detected(self, detector):
        assert detector.detect("Sure! FUNCTION:showAlert:hi") is None
        assert detector.detect("FUNCTION:showAlert:hi\nand then some text") is not None

    def test_missing_arguments(self, detector):
        assert detector.detect("FUNCTION:showAlert:") is None
        assert detector.detect("FUNCTION:showAlert") is None

    def test_parser_failure_falls_through(self, detector, caplog):
        """Test an argument parser exception degrades to no detection."""
        with caplog.at_level(logging.WARNING, logger="cortical_backend.engine.detector"):
            assert detector.detect("FUNCTION:lookup:{not json") is None
        assert any(r.levelno == logging.WARNING and "lookup" in r.message for r in caplog.records)

    def test_parsed_arguments(self, detector):
        call = detector.detect('FUNCTION:lookup:{"id": 7}')
        assert call.arguments == {"id": 7}
        assert call.raw_arguments == '{"id": 7}'

    def test_to_dict(self, detector):
        call = detector.detect("FUNCTION:speak:hi")
        assert call.to_dict() == {"functionName": "speak", "rawArguments": "hi"}

    def test_is_candidate(self, detector):
        assert detector.is_candidate("FUNCTION:nothing:x")
        assert not detector.is_candidate("hello")

    def test_custom_pattern(self, registry):
        detector = FunctionCallDetector(registry, r"^CALL (\w+) (.+)$")
        call = detector.detect("CALL speak hello")
        assert call.function_name == "speak"
        assert detector.detect("FUNCTION:speak:hello") is None
