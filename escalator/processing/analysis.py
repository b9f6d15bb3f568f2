"""Heuristic extraction of error codes, severity and actions from free text."""

import re
from typing import List, Optional

from escalator.models.analysis import ErrorAnalysis, Severity


FALLBACK_EXPLANATION = (
    "Unable to analyze this error automatically. "
    "Please review the technical details below."
)

# Tried in order, first match wins
ERROR_CODE_PATTERNS = [
    re.compile(r"Error:\s*([A-Z0-9_-]+)", re.IGNORECASE),      # Error: CODE123
    re.compile(r"Exception:\s*([A-Z0-9_-]+)", re.IGNORECASE),  # Exception: CODE123
    re.compile(r"HTTP\s+(\d{3})"),                             # HTTP 500
    re.compile(r"status[=:]\s*(\d{3})", re.IGNORECASE),        # status=500, status:500
    re.compile(r"exit\s+code\s+(\d+)", re.IGNORECASE),         # exit code 1
    re.compile(r"code\s+(\d+)", re.IGNORECASE),                # code 1
    re.compile(r"(\d{4,6})"),                                  # 4-6 digit codes
    re.compile(r"([A-Z]{2,4}\d{2,4})"),                        # ABC123, ABCD1234
]

SEVERITY_PATTERN = re.compile(r"(?:severity|level):\s*(low|medium|high|critical)", re.IGNORECASE)
ACTIONS_PATTERN = re.compile(r"(?:actions?|suggestions?|steps?):\s*(.+)", re.IGNORECASE)
ACTION_SPLIT = re.compile(r"[,;]")


def extract_code(text: Optional[str]) -> Optional[str]:
    """Return the first error code found in text, or None."""
    if not text:
        return None

    for pattern in ERROR_CODE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_severity(text: Optional[str]) -> Severity:
    """Find a "severity: X" or "level: X" marker, defaulting to medium."""
    if text:
        match = SEVERITY_PATTERN.search(text)
        if match:
            return Severity(match.group(1).lower())
    return Severity.MEDIUM


def extract_actions(text: Optional[str]) -> List[str]:
    """Split the text after "actions:"/"suggestions:"/"steps:" into items."""
    if not text:
        return []

    match = ACTIONS_PATTERN.search(text)
    if not match:
        return []

    return [a.strip() for a in ACTION_SPLIT.split(match.group(1)) if a.strip()]


def parse_error_analysis(response_text: str, original_error: Optional[str] = None) -> ErrorAnalysis:
    """
    Build an ErrorAnalysis from a summarizer response.

    Severity and suggested actions come from the response text; the error
    code is taken from the original error text so it is available even
    when the response is the fallback explanation.
    """
    return ErrorAnalysis(
        original_error=original_error or "No original error provided",
        user_friendly_message=response_text,
        severity=extract_severity(response_text),
        suggested_actions=extract_actions(response_text),
        error_code=extract_code(original_error),
    )


def fallback_analysis(original_error: Optional[str]) -> ErrorAnalysis:
    """Analysis used when the summarizer is unavailable or unparseable."""
    return parse_error_analysis(FALLBACK_EXPLANATION, original_error)
