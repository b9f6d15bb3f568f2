"""Error analysis result returned by the summarization step."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class Severity(str, Enum):
    """Severity levels reported by the summarizer."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorAnalysis:
    """Human-readable explanation of one or more error logs."""
    original_error: str
    user_friendly_message: str
    severity: Severity = Severity.MEDIUM
    suggested_actions: List[str] = field(default_factory=list)
    error_code: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        return {
            "originalError": self.original_error,
            "userFriendlyMessage": self.user_friendly_message,
            "severity": self.severity.value,
            "suggestedActions": list(self.suggested_actions),
            "timestamp": self.timestamp.isoformat(),
            "errorCode": self.error_code,
        }
