"""Data models module - Event, cycle reports, analyses, remediation jobs."""

from escalator.models.event import Event, EventLevel
from escalator.models.analysis import ErrorAnalysis, Severity
from escalator.models.cycle import CycleReport, EscalationBatch, StageOutcome
from escalator.models.remediation import (
    InvalidTransition,
    RemediationJob,
    RemediationStatus,
)

__all__ = [
    # Ingestion
    "Event",
    "EventLevel",
    # Cycle
    "EscalationBatch",
    "CycleReport",
    "StageOutcome",
    # Analysis
    "ErrorAnalysis",
    "Severity",
    # Remediation
    "RemediationJob",
    "RemediationStatus",
    "InvalidTransition",
]
