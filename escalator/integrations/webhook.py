"""Outbound webhook emitter, one POST per new event."""

import asyncio
from typing import Any, Dict

import aiohttp
import structlog

from escalator.config import WebhookConfig
from escalator.errors import DeliveryError
from escalator.models.event import Event, EventLevel


logger = structlog.get_logger()


def build_webhook_payload(event: Event) -> Dict[str, Any]:
    """Build the alert/event/monitor payload for one event."""
    is_error = event.level == EventLevel.ERROR
    level = event.level.value
    timestamp = event.timestamp.isoformat() if event.timestamp else None
    tags = sorted(event.tags)

    return {
        "alert": {
            "id": event.id,
            "title": f"Log Alert: {level.upper()} in {event.service}",
            "status": "alert" if is_error else "info",
            "severity": level,
            "tags": tags,
            "message": event.message,
            "timestamp": timestamp,
        },
        "event": {
            "id": event.id,
            "title": f"Log Event: {event.service}",
            "text": event.message,
            "priority": "high" if is_error else "normal",
            "tags": tags,
            "timestamp": timestamp,
        },
        "monitor": {
            "id": event.id,
            "name": f"Log Monitor: {event.service}",
            "status": "alert" if is_error else "ok",
            "type": "log",
        },
        "type": "log",
        "timestamp": timestamp,
        "rawLog": event.to_dict(),
        "logContent": {
            "message": event.message,
            "level": level,
            "service": event.service,
            "host": event.host,
            "tags": tags,
            "fullAttributes": event.raw_attributes,
        },
    }


class WebhookEmitter:
    """Posts each new event to the configured webhook URL."""

    def __init__(self, config: WebhookConfig):
        self._config = config

    async def emit(self, event: Event):
        """
        Deliver one event.

        Raises:
            DeliveryError: on transport failure or a non-2xx response.
        """
        payload = build_webhook_payload(event)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._config.user_agent,
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._config.url, json=payload, headers=headers) as response:
                    if not 200 <= response.status < 300:
                        raise DeliveryError(
                            f"Webhook returned status {response.status}",
                            stage="webhook",
                            status=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Webhook request failed: {e}", stage="webhook") from e

        logger.debug("Event sent to webhook", event_id=event.id)
