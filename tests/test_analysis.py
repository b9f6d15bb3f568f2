"""Tests for error-code, severity and action extraction."""

import pytest

from escalator.models.analysis import Severity
from escalator.processing.analysis import (
    FALLBACK_EXPLANATION,
    extract_actions,
    extract_code,
    extract_severity,
    fallback_analysis,
    parse_error_analysis,
)


class TestExtractCode:
    """Test cases for extract_code."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Error: DB_TIMEOUT_01 occurred", "DB_TIMEOUT_01"),
            ("Exception: NullPointer-42 thrown", "NullPointer-42"),
            ("HTTP 503 Service Unavailable", "503"),
            ("request failed status=502", "502"),
            ("request failed Status: 404", "404"),
            ("process ended with exit code 137", "137"),
            ("returned code 7", "7"),
            ("order 123456 could not be loaded", "123456"),
            ("failure in module AB12", "AB12"),
        ],
    )
    def test_patterns(self, text, expected):
        assert extract_code(text) == expected

    def test_no_match(self):
        assert extract_code("something went wrong") is None

    def test_empty(self):
        assert extract_code("") is None
        assert extract_code(None) is None

    def test_first_pattern_wins(self):
        """An Error: token beats an HTTP code later in the text."""
        assert extract_code("HTTP 500 then Error: UPSTREAM_DOWN") == "UPSTREAM_DOWN"

    def test_http_before_status(self):
        assert extract_code("status=404 after HTTP 500") == "500"


class TestExtractSeverity:
    """Test cases for extract_severity."""

    def test_severity_marker(self):
        assert extract_severity("Severity: High. The database is down.") == Severity.HIGH

    def test_level_marker(self):
        assert extract_severity("level: CRITICAL") == Severity.CRITICAL

    def test_default_medium(self):
        assert extract_severity("no marker here") == Severity.MEDIUM
        assert extract_severity(None) == Severity.MEDIUM


class TestExtractActions:
    """Test cases for extract_actions."""

    def test_comma_and_semicolon(self):
        text = "Summary line\nActions: restart the pool, raise the timeout; check DNS\nMore"
        assert extract_actions(text) == ["restart the pool", "raise the timeout", "check DNS"]

    def test_empty_items_dropped(self):
        assert extract_actions("steps: a,, ;b") == ["a", "b"]

    def test_absent(self):
        assert extract_actions("nothing to do") == []


class TestParseErrorAnalysis:
    """Test cases for parse_error_analysis."""

    def test_combines_response_and_original(self):
        analysis = parse_error_analysis(
            "The database timed out. Severity: high\nSuggestions: retry; scale up",
            "Error: DB_TIMEOUT_01 occurred",
        )

        assert analysis.severity == Severity.HIGH
        assert analysis.suggested_actions == ["retry", "scale up"]
        assert analysis.error_code == "DB_TIMEOUT_01"
        assert analysis.original_error == "Error: DB_TIMEOUT_01 occurred"

    def test_fallback(self):
        analysis = fallback_analysis("HTTP 503 Service Unavailable")

        assert analysis.user_friendly_message == FALLBACK_EXPLANATION
        assert analysis.severity == Severity.MEDIUM
        assert analysis.suggested_actions == []
        assert analysis.error_code == "503"

    def test_to_dict_keys(self):
        data = fallback_analysis("x").to_dict()
        assert set(data) == {
            "originalError",
            "userFriendlyMessage",
            "severity",
            "suggestedActions",
            "timestamp",
            "errorCode",
        }
