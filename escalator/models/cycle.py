"""Per-cycle batch and report models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from escalator.models.analysis import ErrorAnalysis
from escalator.models.event import Event


@dataclass
class EscalationBatch:
    """Unseen events collected by one polling cycle, oldest first."""
    cycle_id: int
    window_start: datetime
    window_end: datetime
    events: List[Event] = field(default_factory=list)

    @property
    def event_ids(self) -> List[str]:
        return [e.id for e in self.events]

    def __len__(self):
        return len(self.events)


@dataclass
class StageOutcome:
    """Result of one cycle stage (query, webhook, summarize, sms, remediation)."""
    stage: str
    success: bool
    detail: str = ""
    error: Optional[str] = None
    delivered: int = 0
    failed: int = 0

    def to_dict(self) -> Dict:
        return {
            "stage": self.stage,
            "success": self.success,
            "detail": self.detail,
            "error": self.error,
            "delivered": self.delivered,
            "failed": self.failed,
        }


@dataclass
class CycleReport:
    """
    Outcome of one escalation cycle.

    Lists every stage that ran and which of them failed. A report is
    always produced, even when the event source is down.
    """
    cycle_id: int
    window_start: datetime
    window_end: datetime
    event_count: int = 0
    event_ids: List[str] = field(default_factory=list)
    stages: List[StageOutcome] = field(default_factory=list)
    analysis: Optional[ErrorAnalysis] = None
    remediation_job_id: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def add_stage(self, outcome: StageOutcome):
        self.stages.append(outcome)

    def stage(self, name: str) -> Optional[StageOutcome]:
        """Get the outcome of a stage by name."""
        for outcome in self.stages:
            if outcome.stage == name:
                return outcome
        return None

    @property
    def errors(self) -> List[StageOutcome]:
        return [s for s in self.stages if not s.success]

    @property
    def ok(self) -> bool:
        return not self.errors

    def finish(self):
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict:
        """Convert to dictionary for the API and logs."""
        return {
            "cycle_id": self.cycle_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "event_count": self.event_count,
            "event_ids": list(self.event_ids),
            "ok": self.ok,
            "stages": [s.to_dict() for s in self.stages],
            "errors": [
                {"stage": s.stage, "error": s.error} for s in self.errors
            ],
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "remediation_job_id": self.remediation_job_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
