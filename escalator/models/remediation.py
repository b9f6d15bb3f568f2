"""Remediation job model tracking one automated fix attempt."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class RemediationStatus(str, Enum):
    """Remediation job status values."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RemediationStatus.SUCCEEDED,
            RemediationStatus.FAILED,
            RemediationStatus.TIMED_OUT,
        )


# Allowed forward transitions
_TRANSITIONS = {
    RemediationStatus.PENDING: {
        RemediationStatus.RUNNING,
        RemediationStatus.SUCCEEDED,
        RemediationStatus.FAILED,
        RemediationStatus.TIMED_OUT,
    },
    RemediationStatus.RUNNING: {
        RemediationStatus.SUCCEEDED,
        RemediationStatus.FAILED,
        RemediationStatus.TIMED_OUT,
    },
    RemediationStatus.SUCCEEDED: set(),
    RemediationStatus.FAILED: set(),
    RemediationStatus.TIMED_OUT: set(),
}


class InvalidTransition(Exception):
    """Raised when a job is moved backwards or out of a terminal state."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RemediationJob:
    """
    One externally executed attempt to fix an error.

    Status only moves forward: pending -> running -> {succeeded, failed, timed_out}.
    result_ref is set if and only if the job succeeded.
    """
    job_id: str
    instruction: str = ""
    repository: str = ""
    link: Optional[str] = None

    status: RemediationStatus = RemediationStatus.PENDING
    result_ref: Optional[str] = None
    poll_count: int = 0

    # Last values reported by the remediation service
    collaborator_status: Optional[str] = None
    runtime_status: Optional[str] = None
    last_error: Optional[str] = None

    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def _move(self, target: RemediationStatus):
        if target == self.status and not target.is_terminal:
            return
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Cannot move job {self.job_id} from {self.status.value} to {target.value}"
            )
        self.status = target
        if target.is_terminal:
            self.finished_at = _utcnow()

    def mark_running(self):
        """Record that the remediation service reported on the job."""
        self._move(RemediationStatus.RUNNING)

    def succeed(self, result_ref: str):
        """Mark the job succeeded with the produced artifact reference."""
        if not result_ref:
            raise ValueError("result_ref is required for a succeeded job")
        self._move(RemediationStatus.SUCCEEDED)
        self.result_ref = result_ref

    def fail(self, error: str):
        """Mark the job failed on a terminal error from the service."""
        self._move(RemediationStatus.FAILED)
        self.last_error = error

    def time_out(self):
        """Mark the job timed out after the poll budget was spent."""
        self._move(RemediationStatus.TIMED_OUT)

    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.finished_at:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "result_ref": self.result_ref,
            "poll_count": self.poll_count,
            "link": self.link,
            "repository": self.repository,
            "collaborator_status": self.collaborator_status,
            "runtime_status": self.runtime_status,
            "last_error": self.last_error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
        }
