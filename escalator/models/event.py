"""Event data model for log records pulled from the log-search API."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class EventLevel(str, Enum):
    """Normalized log levels."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: Optional[str]) -> "EventLevel":
        """Map a vendor status string onto a level."""
        if not status:
            return cls.INFO

        value = status.strip().lower()
        if value in ("error", "err", "critical", "fatal", "emergency", "alert"):
            return cls.ERROR
        if value in ("warn", "warning"):
            return cls.WARN
        if value in ("info", "notice", "debug", "ok"):
            return cls.INFO
        return cls.UNKNOWN


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


@dataclass(frozen=True)
class Event:
    """
    One observed log record.

    Events are immutable once ingested; the pipeline only reads them.
    """
    # Source-assigned identifier, stable across queries
    id: str

    timestamp: Optional[datetime] = None
    message: str = ""
    level: EventLevel = EventLevel.UNKNOWN
    service: str = "unknown"
    host: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)

    # Vendor attributes, passed through untouched
    raw_attributes: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def sort_key(self) -> float:
        """Chronological sort key; events without a timestamp sort first."""
        if self.timestamp is None:
            return 0.0
        return self.timestamp.timestamp()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "message": self.message,
            "level": self.level.value,
            "service": self.service,
            "host": self.host,
            "tags": sorted(self.tags),
            "attributes": self.raw_attributes,
        }

    @classmethod
    def from_datadog(
        cls,
        record: Dict[str, Any],
        received_at: Optional[datetime] = None,
    ) -> Optional["Event"]:
        """
        Create an Event from one log-search result record.

        Expected format:
        {
            "id": "AQAAAYx...",
            "type": "log",
            "attributes": {
                "timestamp": "2024-01-15T10:30:00.000Z",
                "message": "Error: DB_TIMEOUT_01 occurred",
                "status": "error",
                "service": "checkout",
                "host": "web-1",
                "tags": ["env:prod"],
                "attributes": {...}
            }
        }

        Returns None for records without an id.
        """
        if not isinstance(record, dict):
            return None

        event_id = record.get("id")
        if event_id is None:
            return None

        attributes = record.get("attributes") or {}
        if not isinstance(attributes, dict):
            attributes = {}

        timestamp = parse_timestamp(attributes.get("timestamp"))
        if timestamp is None:
            timestamp = received_at or datetime.now(timezone.utc)

        tags = attributes.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]

        message = attributes.get("message")
        if not isinstance(message, str):
            message = "" if message is None else str(message)

        return cls(
            id=str(event_id),
            timestamp=timestamp,
            message=message,
            level=EventLevel.from_status(attributes.get("status")),
            service=attributes.get("service") or "unknown",
            host=attributes.get("host"),
            tags=frozenset(str(t) for t in tags),
            raw_attributes=attributes,
        )
