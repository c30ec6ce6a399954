"""
Render job orchestration.

A bounded pool of asyncio workers pulls jobs from a queue and drives each
through its lifecycle::

    waiting -> active -> completed
                      -> failed
                      -> cancelled
                      -> retried -> waiting   (retryable failure, attempts left)

Progress reported by a handler is clamped to [0, 100] and never decreases
within an attempt.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from dramagen.config import get_settings
from dramagen.exceptions import DramaGenError, JobCancelledError
from dramagen.jobs.handlers import HANDLERS, Handler, JobServices, execute_payload
from dramagen.jobs.queue import JobQueue
from dramagen.jobs.retry import RetryPolicy, classify_error
from dramagen.schemas.envelope import ErrorInfo
from dramagen.schemas.job import JobStatus, RenderJob

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _error_info(exc: BaseException, retryable: bool) -> ErrorInfo:
    if isinstance(exc, DramaGenError):
        info = exc.to_error_info()
    else:
        info = ErrorInfo(code="INTERNAL_ERROR", message=f"{type(exc).__name__}: {exc}")
    return info.model_copy(update={"retryable": retryable})


class RenderJobOrchestrator:
    """Runs queued render jobs with bounded concurrency and retry backoff.

    Args:
        queue: Source of jobs and sink for state reports
        concurrency: Number of jobs run at once
        policy: Backoff settings for retryable failures
        services: Shared encoder/renderer components handed to handlers
        handlers: Handler per job kind; defaults to the built-in set
        sleep: Coroutine used to wait out retry delays
    """

    def __init__(
        self,
        queue: JobQueue,
        *,
        concurrency: int | None = None,
        policy: RetryPolicy | None = None,
        services: JobServices | None = None,
        handlers: dict[str, Handler] | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.queue = queue
        self.concurrency = concurrency or get_settings().worker_concurrency
        self.policy = policy or RetryPolicy.from_settings()
        self.services = services or JobServices()
        self.handlers = handlers or HANDLERS
        self._sleep = sleep
        self._workers: list[asyncio.Task] = []
        self._running: dict[str, asyncio.Task] = {}
        self._timers: set[asyncio.Task] = set()
        self._finished: dict[str, asyncio.Event] = {}

    # -------------------------------------------------------------------------
    # Pool lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if self._workers:
            return
        logger.info(f"[JOB] Starting {self.concurrency} workers")
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"render-worker-{n}") for n in range(self.concurrency)
        ]

    async def stop(self) -> None:
        """Stop the workers; running jobs are cancelled."""
        tasks = [*self._workers, *self._running.values(), *self._timers]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        logger.info("[JOB] Workers stopped")

    async def __aenter__(self) -> "RenderJobOrchestrator":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _worker(self, n: int) -> None:
        while True:
            job = await self.queue.next_job()
            task = asyncio.create_task(self.run_job(job), name=f"render-job-{job.id}")
            self._running[job.id] = task
            try:
                # wait() rather than await: a cancelled job must not stop the worker
                await asyncio.wait({task})
            finally:
                self._running.pop(job.id, None)
            if task.cancelled() and not job.status.is_terminal:
                # Cancelled before run_job got to execute
                job.error = JobCancelledError(job.id).to_error_info()
                self._set_status(job, JobStatus.CANCELLED)

    # -------------------------------------------------------------------------
    # Job execution
    # -------------------------------------------------------------------------

    def _set_status(self, job: RenderJob, status: JobStatus) -> None:
        job.status = status
        if status.is_terminal:
            job.completed_at = datetime.now(UTC)
        self.queue.report(job)
        if status.is_terminal and (finished := self._finished.pop(job.id, None)) is not None:
            finished.set()

    def _progress_callback(self, job: RenderJob):
        def on_progress(percent: float, *_: object) -> None:
            value = max(0.0, min(100.0, percent))
            if value > job.progress:
                job.progress = value
                self.queue.report(job)

        return on_progress

    async def run_job(self, job: RenderJob, *, schedule_retry: bool = True) -> RenderJob:
        """Run one attempt of ``job`` and leave it in its next state.

        With ``schedule_retry`` False a retryable failure is left in ``retried``
        for the caller's own queue to reschedule.
        """
        job.attempts += 1
        job.progress = 0.0
        job.error = None
        job.started_at = datetime.now(UTC)
        self._set_status(job, JobStatus.ACTIVE)
        logger.info(f"[JOB] {job.id} ({job.kind}) attempt {job.attempts}/{job.max_attempts}")

        try:
            result = await execute_payload(
                job.payload, self.services, self._progress_callback(job), self.handlers
            )
        except asyncio.CancelledError:
            job.error = JobCancelledError(job.id).to_error_info()
            self._set_status(job, JobStatus.CANCELLED)
            logger.info(f"[JOB] {job.id} cancelled")
            raise
        except Exception as e:
            self._handle_failure(job, e, schedule_retry)
            return job

        job.result = result
        job.progress = 100.0
        self._set_status(job, JobStatus.COMPLETED)
        logger.info(f"[JOB] {job.id} completed")
        return job

    def _handle_failure(self, job: RenderJob, exc: Exception, schedule_retry: bool) -> None:
        decision = classify_error(exc)
        job.error = _error_info(exc, decision.retryable)

        if self.policy.should_retry(decision, job.attempts, job.max_attempts):
            delay_ms = self.policy.delay_ms(job.attempts - 1)
            logger.warning(
                f"[JOB] {job.id} failed ({decision.error_type.value}: {exc}); "
                f"retrying in {delay_ms:.0f}ms (attempt {job.attempts}/{job.max_attempts})"
            )
            self._set_status(job, JobStatus.RETRIED)
            if schedule_retry:
                timer = asyncio.create_task(self._requeue_after(job, delay_ms))
                self._timers.add(timer)
                timer.add_done_callback(self._timers.discard)
            return

        logger.error(f"[JOB] {job.id} failed ({decision.error_type.value}): {exc}")
        self._set_status(job, JobStatus.FAILED)

    async def _requeue_after(self, job: RenderJob, delay_ms: float) -> None:
        await self._sleep(delay_ms / 1000)
        if job.status != JobStatus.RETRIED:
            return
        job.progress = 0.0
        self._set_status(job, JobStatus.WAITING)
        await self.queue.requeue(job)

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that has not finished; an active job's process is terminated.

        Returns:
            True if the job was cancelled, False if unknown or already finished
        """
        job = self.queue.get(job_id)
        if job is None or job.status.is_terminal:
            return False

        task = self._running.get(job_id)
        if task is not None and not task.done():
            logger.info(f"[JOB] Cancelling active job {job_id}")
            task.cancel()
            return True

        job.error = JobCancelledError(job_id).to_error_info()
        self._set_status(job, JobStatus.CANCELLED)
        logger.info(f"[JOB] Cancelled {job_id} before it ran")
        return True

    async def wait_for(self, job_id: str) -> RenderJob:
        """Wait until the job reaches completed, failed or cancelled."""
        job = self.queue.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if not job.status.is_terminal:
            await self._finished.setdefault(job_id, asyncio.Event()).wait()
        return job
