"""Escalation pipeline: query, deduplicate, and fan out new error logs."""

import asyncio
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional

import structlog

from escalator.config import Settings
from escalator.errors import ParseError
from escalator.models.analysis import ErrorAnalysis
from escalator.models.cycle import CycleReport, EscalationBatch, StageOutcome
from escalator.models.event import Event
from escalator.models.remediation import RemediationJob
from escalator.processing.analysis import fallback_analysis, parse_error_analysis
from escalator.processing.deduplicator import Deduplicator
from escalator.processing.formatter import format_batch, join_messages
from escalator.integrations.sms import build_errors_found_message, build_remediation_message


logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EscalationPipeline:
    """
    Drives one poll-query-dedupe-notify cycle at a time.

    Each cycle:

    1. Query the event source for the window since the last successful query
    2. Drop already-seen event IDs and mark the rest seen, oldest first
    3. Fan out the batch to the configured collaborators concurrently:
       webhook (one call per event), summarizer, SMS and remediation

    Collaborators are optional; a missing one is simply skipped. Failures
    are recorded in the CycleReport and never raised, so the pipeline can
    run on a fixed schedule indefinitely.
    """

    def __init__(
        self,
        settings: Settings,
        source,
        deduplicator: Optional[Deduplicator] = None,
        webhook=None,
        summarizer=None,
        sms=None,
        tracker=None,
    ):
        self._settings = settings
        self._config = settings.pipeline
        self._source = source
        if deduplicator is None:
            deduplicator = Deduplicator(
                capacity=self._config.dedup_capacity,
                eviction_batch_size=self._config.dedup_eviction_batch,
            )
        self._deduplicator = deduplicator
        self._webhook = webhook
        self._summarizer = summarizer
        self._sms = sms
        self._tracker = tracker

        # Cycle state
        self._cycle_counter = 0
        self._window_start = _utcnow() - timedelta(seconds=self._config.initial_lookback_seconds)
        self._cycle_lock = asyncio.Lock()
        self._reports: Deque[CycleReport] = deque(maxlen=self._config.report_history)

        # Scheduler state
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

        if self._tracker is not None and self._sms is not None:
            self._tracker.set_finished_callback(self._notify_remediation_finished)

    @property
    def source(self):
        return self._source

    @property
    def tracker(self):
        return self._tracker

    @property
    def deduplicator(self) -> Deduplicator:
        return self._deduplicator

    @property
    def window_start(self) -> datetime:
        return self._window_start

    @property
    def cycle_count(self) -> int:
        return self._cycle_counter

    @property
    def running(self) -> bool:
        return self._running

    def recent_reports(self) -> List[CycleReport]:
        """Most recent cycle reports, newest first."""
        return list(reversed(self._reports))

    async def _with_timeout(self, coro):
        return await asyncio.wait_for(coro, timeout=self._config.call_timeout_seconds)

    async def run_cycle(self) -> CycleReport:
        """Run one full escalation cycle. Never raises."""
        async with self._cycle_lock:
            self._cycle_counter += 1
            cycle_id = self._cycle_counter
            window_start = self._window_start
            window_end = _utcnow()

            report = CycleReport(
                cycle_id=cycle_id,
                window_start=window_start,
                window_end=window_end,
            )
            log = logger.bind(cycle_id=cycle_id)

            log.info(
                "Starting escalation cycle",
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
            )

            # Step 1: query
            try:
                events = await self._with_timeout(self._source.query(window_start, window_end))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = str(e) or type(e).__name__
                log.error("Event source query failed", error=error)
                report.add_stage(StageOutcome(stage="query", success=False, error=error))
                return self._close(report)

            # Only advance the window after a successful query
            self._window_start = self._next_window_start(window_start, window_end, events)
            report.add_stage(
                StageOutcome(stage="query", success=True, detail=f"{len(events)} events returned")
            )

            # Step 2: deduplicate, oldest first
            batch = self._build_batch(cycle_id, window_start, window_end, events)
            report.event_count = len(batch)
            report.event_ids = batch.event_ids

            log.info(
                "Deduplicated events",
                returned=len(events),
                new=len(batch),
                seen_ids=len(self._deduplicator),
            )

            # Step 3: nothing new, nothing to send
            if not batch.events:
                return self._close(report)

            for event in batch.events:
                log.info(
                    "New event",
                    event_id=event.id,
                    level=event.level.value,
                    service=event.service,
                    message=event.message[:200],
                )

        # Step 4: fan out once the batch is marked seen. The next cycle may
        # start its query while this fan-out is still in flight.
        await self._dispatch(batch, report)
        return self._close(report)

    def _build_batch(
        self,
        cycle_id: int,
        window_start: datetime,
        window_end: datetime,
        events: List[Event],
    ) -> EscalationBatch:
        batch = EscalationBatch(cycle_id=cycle_id, window_start=window_start, window_end=window_end)
        for event in sorted(events, key=lambda e: e.sort_key):
            if not self._deduplicator.is_new(event.id):
                continue
            self._deduplicator.mark_seen(event.id)
            batch.events.append(event)
        return batch

    def _next_window_start(
        self,
        window_start: datetime,
        window_end: datetime,
        events: List[Event],
    ) -> datetime:
        """
        Where the next query window begins.

        A full page means the window may hold more events than were
        returned, so the next window resumes at the newest event seen.
        Records at that boundary are returned again and dropped by the
        deduplicator.
        """
        page_limit = self._settings.datadog.page_limit
        if len(events) < page_limit:
            return window_end

        stamps = [e.timestamp for e in events if e.timestamp is not None]
        newest = max(stamps) if stamps else None
        if newest is None or newest <= window_start or newest > window_end:
            logger.warning(
                "Full result page without usable timestamps, advancing to window end",
                page_limit=page_limit,
            )
            return window_end

        logger.info(
            "Full result page returned, resuming from newest event",
            page_limit=page_limit,
            resume_from=newest.isoformat(),
        )
        return newest

    async def _dispatch(self, batch: EscalationBatch, report: CycleReport):
        actions = []
        if self._webhook is not None:
            actions.append(self._emit_webhooks(batch))
        if self._summarizer is not None:
            actions.append(self._summarize(batch, report))
        if self._sms is not None:
            actions.append(self._notify_sms(batch))
        if self._tracker is not None:
            actions.append(self._start_remediation(batch, report))

        outcomes = await asyncio.gather(*actions)
        for outcome in outcomes:
            report.add_stage(outcome)
            if not outcome.success:
                logger.warning(
                    "Escalation stage failed",
                    cycle_id=batch.cycle_id,
                    stage=outcome.stage,
                    error=outcome.error,
                )

    async def _emit_one(self, event: Event) -> Optional[str]:
        try:
            await self._with_timeout(self._webhook.emit(event))
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Failed to send event to webhook", event_id=event.id, error=error)
            return error

    async def _emit_webhooks(self, batch: EscalationBatch) -> StageOutcome:
        errors = await asyncio.gather(*(self._emit_one(e) for e in batch.events))
        failures = [e for e in errors if e is not None]
        delivered = len(errors) - len(failures)
        return StageOutcome(
            stage="webhook",
            success=not failures,
            detail=f"{delivered}/{len(errors)} events delivered",
            error=failures[0] if failures else None,
            delivered=delivered,
            failed=len(failures),
        )

    async def _summarize(self, batch: EscalationBatch, report: CycleReport) -> StageOutcome:
        combined = format_batch(batch.events)
        analysis, outcome = await self.analyze(combined)
        report.analysis = analysis
        return outcome

    async def analyze(self, error_text: str) -> "tuple[ErrorAnalysis, StageOutcome]":
        """
        Summarize error text, falling back to heuristic extraction.

        Always returns an analysis; the outcome records whether the
        summarizer itself succeeded.
        """
        if self._summarizer is None:
            return (
                fallback_analysis(error_text),
                StageOutcome(stage="summarize", success=False, error="Summarizer not configured"),
            )

        try:
            summary = await self._with_timeout(self._summarizer.summarize(error_text))
        except asyncio.CancelledError:
            raise
        except ParseError as e:
            logger.warning("Unparseable summarizer response, using fallback", error=str(e))
            return (
                fallback_analysis(error_text),
                StageOutcome(stage="summarize", success=False, detail="fallback analysis", error=str(e)),
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Summarizer call failed, using fallback", error=error)
            return (
                fallback_analysis(error_text),
                StageOutcome(stage="summarize", success=False, detail="fallback analysis", error=error),
            )

        analysis = parse_error_analysis(summary, error_text)
        return (
            analysis,
            StageOutcome(stage="summarize", success=True, detail=f"severity={analysis.severity.value}"),
        )

    async def _notify_sms(self, batch: EscalationBatch) -> StageOutcome:
        message = build_errors_found_message(
            batch.events, remediation_requested=self._tracker is not None
        )
        try:
            sent = await self._with_timeout(self._sms.send(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return StageOutcome(stage="sms", success=False, error=str(e) or type(e).__name__)

        if not sent:
            return StageOutcome(stage="sms", success=False, error="SMS provider rejected the message")
        return StageOutcome(stage="sms", success=True, delivered=1)

    async def _start_remediation(self, batch: EscalationBatch, report: CycleReport) -> StageOutcome:
        context = join_messages(batch.events)
        try:
            job = await self._with_timeout(self._tracker.start(context))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Failed to start remediation", cycle_id=batch.cycle_id, error=error)
            return StageOutcome(stage="remediation", success=False, error=error)

        self._tracker.spawn(job)
        report.remediation_job_id = job.job_id
        return StageOutcome(stage="remediation", success=True, detail=f"job {job.job_id} started")

    async def _notify_remediation_finished(self, job: RemediationJob):
        message = build_remediation_message(job)
        try:
            sent = await self._with_timeout(self._sms.send(message))
        except asyncio.TimeoutError:
            sent = False
        if not sent:
            logger.error("Failed to send remediation SMS", job_id=job.job_id, status=job.status.value)

    def _close(self, report: CycleReport) -> CycleReport:
        report.finish()
        self._reports.append(report)

        logger.info(
            "Escalation cycle complete",
            cycle_id=report.cycle_id,
            event_count=report.event_count,
            failed_stages=[s.stage for s in report.errors],
        )
        return report

    async def start(self):
        """Start running cycles on the configured interval."""
        if self._running:
            return
        logger.info(
            "Starting escalation scheduler",
            interval_seconds=self._config.poll_interval_seconds,
        )
        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self):
        """Stop the scheduler and any background remediation tracking."""
        logger.info("Stopping escalation scheduler")
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._tracker is not None:
            await self._tracker.shutdown()

    async def _run_loop(self):
        """Background loop running one cycle per interval."""
        logger.info("Escalation loop started")

        while self._running:
            try:
                await self.run_cycle()
                await asyncio.sleep(self._config.poll_interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in escalation loop", error=str(e))
                await asyncio.sleep(self._config.poll_interval_seconds)

        logger.info("Escalation loop stopped")
