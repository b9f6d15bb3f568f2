"""Log Escalator - Main Entry Point."""

import logging
import signal
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from escalator.config import get_settings, Settings
from escalator.ingestion.webhook_server import router as webhook_router
from escalator.integrations.datadog import DatadogLogSource
from escalator.integrations.remediation import RemediationClient
from escalator.integrations.sms import SMSNotifier
from escalator.integrations.summarizer import Summarizer
from escalator.integrations.webhook import WebhookEmitter
from escalator.processing.formatter import format_event
from escalator.processing.pipeline import EscalationPipeline
from escalator.remediation.tracker import RemediationTracker


VERSION = "1.0.0"


# Configure structured logging
def setup_logging(settings: Settings):
    """Configure structured logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


logger = structlog.get_logger()


def build_pipeline(settings: Settings) -> EscalationPipeline:
    """Wire the pipeline with every collaborator that is configured."""
    source = DatadogLogSource(settings.datadog)

    webhook = WebhookEmitter(settings.webhook) if settings.webhook.enabled else None
    summarizer = Summarizer(settings.summarizer) if settings.summarizer.enabled else None
    sms = SMSNotifier(settings.sms) if settings.sms.enabled else None

    tracker = None
    if settings.remediation.enabled:
        tracker = RemediationTracker(
            RemediationClient(settings.remediation),
            initial_delay_seconds=settings.remediation.initial_delay_seconds,
            poll_interval_seconds=settings.remediation.poll_interval_seconds,
            max_polls=settings.remediation.max_polls,
        )

    for name, collaborator in (
        ("webhook", webhook),
        ("summarizer", summarizer),
        ("sms", sms),
        ("remediation", tracker),
    ):
        if collaborator is None:
            logger.warning("Collaborator not configured, stage disabled", stage=name)

    return EscalationPipeline(
        settings,
        source=source,
        webhook=webhook,
        summarizer=summarizer,
        sms=sms,
        tracker=tracker,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging(settings)

    logger.info(
        "Starting Log Escalator",
        version=VERSION,
        host=settings.server.host,
        port=settings.server.port,
    )

    pipeline = build_pipeline(settings)

    app.state.settings = settings
    app.state.pipeline = pipeline

    if settings.datadog.enabled:
        await pipeline.start()
    else:
        logger.warning("Log search credentials missing, scheduled cycles disabled")

    logger.info("Log Escalator started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Log Escalator")
    await pipeline.stop()
    logger.info("Log Escalator stopped")


# Create FastAPI application
app = FastAPI(
    title="Log Escalator",
    description="Polls error logs, deduplicates them and escalates new ones",
    version=VERSION,
    lifespan=lifespan,
)


# Include routers
app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])


class AnalyzeRequest(BaseModel):
    error: Optional[str] = None
    message: Optional[str] = None


class RemediationRequest(BaseModel):
    exceptionMessage: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pipeline(request: Request) -> Optional[EscalationPipeline]:
    return getattr(request.app.state, "pipeline", None)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": VERSION,
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Log Escalator",
        "version": VERSION,
        "description": "Error log escalation pipeline",
        "endpoints": {
            "health": "/health",
            "webhooks": {
                "datadog": "/webhooks/datadog",
            },
            "cron": {
                "run": "/cron/logs",
                "status": "/cron/status",
            },
            "cycles": "/cycles",
            "analyze": "/analyze-errors",
            "remediation": "/remediation",
        },
    }


async def _run_cycle(request: Request):
    pipeline = _pipeline(request)
    if not pipeline:
        return JSONResponse({"error": "Pipeline not initialized"}, status_code=503)

    report = await pipeline.run_cycle()
    return {
        "success": report.ok,
        "message": "Log search completed",
        "report": report.to_dict(),
        "timestamp": _now(),
    }


@app.get("/cron/logs")
async def run_cycle_get(request: Request):
    """Run one escalation cycle (scheduler trigger)."""
    return await _run_cycle(request)


@app.post("/cron/logs")
async def run_cycle_post(request: Request):
    """Run one escalation cycle (manual trigger)."""
    return await _run_cycle(request)


@app.get("/cron/status")
async def cron_status(request: Request):
    """Describe the schedule and which collaborators are configured."""
    pipeline = _pipeline(request)
    settings: Settings = getattr(request.app.state, "settings", None) or get_settings()

    return {
        "status": "running" if pipeline and pipeline.running else "stopped",
        "interval_seconds": settings.pipeline.poll_interval_seconds,
        "endpoint": "/cron/logs",
        "cycles_run": pipeline.cycle_count if pipeline else 0,
        "seen_event_ids": len(pipeline.deduplicator) if pipeline else 0,
        "collaborators": {
            "datadog": settings.datadog.enabled,
            "webhook": settings.webhook.enabled,
            "summarizer": settings.summarizer.enabled,
            "sms": settings.sms.enabled,
            "remediation": settings.remediation.enabled,
        },
        "timestamp": _now(),
    }


@app.get("/cycles")
async def list_cycles(request: Request):
    """List recent cycle reports, newest first."""
    pipeline = _pipeline(request)
    if not pipeline:
        return {"cycles": [], "error": "Pipeline not initialized"}

    reports = pipeline.recent_reports()
    return {
        "cycles": [r.to_dict() for r in reports],
        "count": len(reports),
    }


@app.get("/analyze-errors")
async def analyze_recent_errors(request: Request):
    """Fetch recent error logs and analyze them together."""
    pipeline = _pipeline(request)
    if not pipeline:
        return JSONResponse({"success": False, "error": "Pipeline not initialized"}, status_code=503)

    try:
        events = await pipeline.source.query(None, None, sort="timestamp", page_limit=100)
    except Exception as e:
        logger.error("Failed to fetch recent errors", error=str(e))
        events = []

    # Most recent first
    errors = [format_event(e) for e in sorted(events, key=lambda e: e.sort_key, reverse=True)]

    if not errors:
        return {
            "success": True,
            "message": "No errors found in the recent logs.",
            "errors": [],
            "analyses": [],
        }

    analysis, _ = await pipeline.analyze("\n\n---\n\n".join(errors))
    return {
        "success": True,
        "message": f"Found {len(errors)} errors, analyzed complete context",
        "errors": errors,
        "analyses": [analysis.to_dict()],
        "timestamp": _now(),
    }


@app.post("/analyze-errors")
async def analyze_custom_error(body: AnalyzeRequest, request: Request):
    """Analyze a single posted error message."""
    pipeline = _pipeline(request)
    if not pipeline:
        return JSONResponse({"success": False, "error": "Pipeline not initialized"}, status_code=503)

    custom_error = body.error or body.message or ""
    if not custom_error:
        return JSONResponse(
            {"success": False, "error": "No error message provided"},
            status_code=400,
        )

    analysis, outcome = await pipeline.analyze(custom_error)
    return {
        "success": True,
        "message": "Error analyzed successfully" if outcome.success else "Fallback analysis used",
        "analysis": analysis.to_dict(),
        "timestamp": _now(),
    }


@app.post("/remediation")
async def start_remediation(body: RemediationRequest, request: Request):
    """Start an automated fix for an exception and track it."""
    pipeline = _pipeline(request)
    tracker = pipeline.tracker if pipeline else None
    if not tracker:
        return JSONResponse({"error": "Remediation is not configured"}, status_code=503)

    if not body.exceptionMessage:
        return JSONResponse({"error": "exceptionMessage is required"}, status_code=400)

    try:
        job = await tracker.start(body.exceptionMessage)
    except Exception as e:
        logger.error("Failed to start remediation", error=str(e))
        return JSONResponse(
            {"error": "Failed to start remediation", "details": str(e)},
            status_code=502,
        )

    tracker.spawn(job)
    return {"success": True, "job": job.to_dict()}


@app.get("/remediation/{job_id}")
async def get_remediation(job_id: str, request: Request):
    """Get a remediation job by ID."""
    pipeline = _pipeline(request)
    tracker = pipeline.tracker if pipeline else None
    job = tracker.get_job(job_id) if tracker else None
    if not job:
        return JSONResponse({"error": f"Remediation job {job_id} not found"}, status_code=404)

    return job.to_dict()


def handle_signal(signum, frame):
    """Handle shutdown signals."""
    logger.info(f"Received signal {signum}, initiating shutdown")
    sys.exit(0)


def main():
    """Main entry point."""
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    settings = get_settings()

    uvicorn.run(
        "escalator.main:app",
        host=settings.server.host,
        port=settings.server.port,
        workers=settings.server.workers,
        reload=False,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
