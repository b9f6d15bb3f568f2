"""Canonical display strings for events."""

from typing import Iterable

from escalator.models.event import Event


NO_MESSAGE = "No message"
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"
MESSAGE_SEPARATOR = "\n\n"


def format_timestamp(event: Event) -> str:
    """Render the event timestamp as YYYY/MM/DD HH:MM:SS (24-hour)."""
    if event.timestamp is None:
        return ""
    return event.timestamp.strftime(TIMESTAMP_FORMAT)


def format_event(event: Event) -> str:
    """
    Format an event as "[<timestamp>] <message>".

    Falls back to the bare message when the event has no timestamp and
    to a placeholder when it has no message.
    """
    message = event.message or NO_MESSAGE
    stamp = format_timestamp(event)
    if stamp:
        return f"[{stamp}] {message}"
    return message


def format_batch(events: Iterable[Event]) -> str:
    """Join formatted events for combined summarization."""
    return MESSAGE_SEPARATOR.join(format_event(e) for e in events)


def join_messages(events: Iterable[Event]) -> str:
    """Join raw event messages for remediation requests."""
    return MESSAGE_SEPARATOR.join(e.message or NO_MESSAGE for e in events)
