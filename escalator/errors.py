"""Exception taxonomy for collaborator calls."""

from typing import Optional


class EscalatorError(Exception):
    """Base class for all escalator errors."""


class AdapterError(EscalatorError):
    """The event source was unreachable or returned a malformed response."""


class DeliveryError(EscalatorError):
    """A downstream call (webhook, summarizer, SMS, remediation) failed."""

    def __init__(self, message: str, stage: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.status = status


class ParseError(EscalatorError):
    """A collaborator response could not be decoded."""
