"""Webhook receiver for log-alert deliveries and verification handshakes."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field


logger = structlog.get_logger()

router = APIRouter()


# Pydantic models for request validation

class AlertSection(BaseModel):
    """Alert part of a log-alert webhook."""
    id: Optional[Union[str, int]] = None
    title: Optional[str] = None
    status: Optional[str] = None
    severity: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    message: Optional[str] = None
    timestamp: Optional[str] = None


class EventSection(BaseModel):
    """Event part of a log-alert webhook."""
    id: Optional[Union[str, int]] = None
    title: Optional[str] = None
    text: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    timestamp: Optional[str] = None


class MonitorSection(BaseModel):
    """Monitor part of a log-alert webhook."""
    id: Optional[Union[str, int]] = None
    name: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None


class LogAlertPayload(BaseModel):
    """Log-alert webhook payload, as produced by the escalation pipeline."""
    alert: Optional[AlertSection] = None
    event: Optional[EventSection] = None
    monitor: Optional[MonitorSection] = None
    type: Optional[str] = None
    timestamp: Optional[str] = None
    rawLog: Optional[Dict[str, Any]] = None
    logContent: Optional[Dict[str, Any]] = None


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    success: bool
    message: str
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/datadog")
async def verify_datadog_webhook(challenge: Optional[str] = None):
    """
    Verification handshake.

    Echoes the challenge back verbatim when present, otherwise reports
    that the endpoint is alive.
    """
    logger.info("Webhook verification request", challenge=challenge)

    if challenge is not None:
        return PlainTextResponse(challenge, status_code=200)

    return {
        "message": "Datadog webhook endpoint is active",
        "timestamp": _now(),
    }


@router.post("/datadog", response_model=WebhookResponse)
async def receive_datadog_webhook(payload: LogAlertPayload, request: Request):
    """Receive one log-alert delivery and log its sections."""
    logger.info(
        "Log-alert webhook received",
        webhook_type=payload.type or "unknown",
        user_agent=request.headers.get("user-agent", ""),
    )

    if payload.alert:
        logger.info(
            "Processing alert",
            alert_id=payload.alert.id,
            title=payload.alert.title,
            status=payload.alert.status,
            severity=payload.alert.severity,
            tags=payload.alert.tags,
        )

    if payload.event:
        logger.info(
            "Processing event",
            event_id=payload.event.id,
            title=payload.event.title,
            text=payload.event.text,
            priority=payload.event.priority,
        )

    if payload.monitor:
        logger.info(
            "Processing monitor",
            monitor_id=payload.monitor.id,
            name=payload.monitor.name,
            status=payload.monitor.status,
            type=payload.monitor.type,
        )

    logger.info(
        "Log-alert webhook processed",
        has_alert=payload.alert is not None,
        has_event=payload.event is not None,
        has_monitor=payload.monitor is not None,
        log_content=payload.logContent,
    )

    return WebhookResponse(
        success=True,
        message="Datadog webhook processed successfully",
        timestamp=_now(),
    )
