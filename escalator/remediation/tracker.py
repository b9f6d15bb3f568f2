"""Remediation tracker that polls remediation jobs to a terminal status."""

import asyncio
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from escalator.errors import DeliveryError
from escalator.integrations.remediation import RemediationClient, build_instruction
from escalator.models.remediation import RemediationJob, RemediationStatus


logger = structlog.get_logger()

# Collaborator status values that end a job as failed
FAILED_STATUSES = {"error", "failed"}

FINISHED_HISTORY = 100


def _is_failure(status: Optional[str], runtime_status: Optional[str]) -> bool:
    if status and str(status).strip().lower() in FAILED_STATUSES:
        return True
    if runtime_status and "error" in str(runtime_status).lower():
        return True
    return False


class RemediationTracker:
    """
    Tracks remediation jobs from request to terminal status.

    State machine: pending -> running -> {succeeded, failed, timed_out}

    - start() requests the job and returns it as pending.
    - poll() advances a job by one status check.
    - spawn() runs track() in the background: a grace delay, then polls
      at a fixed interval until the job is terminal or the poll budget
      is spent, then reports the job to on_finished.

    A non-empty result reference is the only success signal; the
    service's own status text is not consulted for success.
    """

    def __init__(
        self,
        client: RemediationClient,
        initial_delay_seconds: float = 20,
        poll_interval_seconds: float = 10,
        max_polls: int = 30,
        on_finished: Optional[Callable[[RemediationJob], Awaitable[None]]] = None,
    ):
        if max_polls < 1:
            raise ValueError(f"max_polls must be a positive integer, got {max_polls}")
        self._client = client
        self._initial_delay = initial_delay_seconds
        self._poll_interval = poll_interval_seconds
        self._max_polls = max_polls
        self._on_finished = on_finished

        self._jobs: Dict[str, RemediationJob] = {}
        self._finished: "OrderedDict[str, RemediationJob]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task] = {}

    def set_finished_callback(self, callback: Callable[[RemediationJob], Awaitable[None]]):
        """Set callback invoked once per job when it reaches a terminal status."""
        self._on_finished = callback

    @property
    def max_polls(self) -> int:
        return self._max_polls

    async def start(self, context: str) -> RemediationJob:
        """
        Request a remediation job for the given error context.

        Raises:
            DeliveryError: when the remediation service rejects the request.
        """
        instruction = build_instruction(context)
        started = await self._client.start(instruction)

        job = RemediationJob(
            job_id=started.job_id,
            instruction=instruction,
            repository=self._client.repository,
            link=started.link,
            collaborator_status=started.status,
        )
        self._jobs[job.job_id] = job

        logger.info("Remediation job started", job_id=job.job_id, link=job.link)
        return job

    async def poll(self, job_id: str) -> RemediationStatus:
        """
        Check a job's status once.

        Every call on a non-terminal job counts against the poll budget,
        including calls whose request fails.
        """
        job = self.get_job(job_id)
        if job is None:
            raise KeyError(job_id)

        if job.status.is_terminal:
            return job.status

        job.poll_count += 1

        try:
            report = await self._client.status(job_id)
        except asyncio.CancelledError:
            raise
        except DeliveryError as e:
            job.last_error = str(e)
            logger.warning(
                "Remediation status poll failed",
                job_id=job_id,
                poll_count=job.poll_count,
                error=str(e),
            )
        except Exception as e:
            job.last_error = str(e) or type(e).__name__
            logger.error(
                "Unexpected error polling remediation status",
                job_id=job_id,
                poll_count=job.poll_count,
                error=job.last_error,
            )
        else:
            job.collaborator_status = report.status
            job.runtime_status = report.runtime_status
            job.mark_running()

            if report.result_ref:
                job.succeed(report.result_ref)
            elif _is_failure(report.status, report.runtime_status):
                job.fail(f"Remediation service reported {report.status or report.runtime_status}")

            logger.debug(
                "Remediation status polled",
                job_id=job_id,
                poll_count=job.poll_count,
                collaborator_status=report.status,
                status=job.status.value,
            )

        if not job.status.is_terminal and job.poll_count >= self._max_polls:
            job.time_out()
            logger.warning(
                "Remediation job timed out",
                job_id=job_id,
                poll_count=job.poll_count,
            )

        if job.status.is_terminal:
            self._retire(job)

        return job.status

    async def track(self, job_id: str) -> RemediationJob:
        """Poll a job until it is terminal, then report it."""
        job = self.get_job(job_id)
        if job is None:
            raise KeyError(job_id)

        await asyncio.sleep(self._initial_delay)

        while True:
            status = await self.poll(job_id)
            if status.is_terminal:
                break
            await asyncio.sleep(self._poll_interval)

        logger.info(
            "Remediation job finished",
            job_id=job_id,
            status=job.status.value,
            result_ref=job.result_ref,
            poll_count=job.poll_count,
        )

        if self._on_finished:
            try:
                await self._on_finished(job)
            except Exception as e:
                logger.error(
                    "Remediation finished callback failed",
                    job_id=job_id,
                    error=str(e),
                )

        return job

    def spawn(self, job: RemediationJob) -> asyncio.Task:
        """Track a job in the background."""
        task = asyncio.create_task(self.track(job.job_id))
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda t, job_id=job.job_id: self._task_done(job_id, t))
        return task

    def _task_done(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            self._tasks.pop(job_id)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Remediation tracking crashed",
                job_id=job_id,
                error=str(error) or type(error).__name__,
            )

    def cancel(self, job_id: str) -> bool:
        """Stop tracking a job. Returns False if it was not being tracked."""
        task = self._tasks.pop(job_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info("Remediation tracking cancelled", job_id=job_id)
        return True

    async def shutdown(self):
        """Cancel all background tracking."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _retire(self, job: RemediationJob):
        self._jobs.pop(job.job_id, None)
        self._finished[job.job_id] = job
        while len(self._finished) > FINISHED_HISTORY:
            self._finished.popitem(last=False)

    def get_job(self, job_id: str) -> Optional[RemediationJob]:
        """Get an active or recently finished job by ID."""
        return self._jobs.get(job_id) or self._finished.get(job_id)

    def get_active_jobs(self) -> List[RemediationJob]:
        return list(self._jobs.values())

    @property
    def tracking_count(self) -> int:
        return len(self._tasks)
