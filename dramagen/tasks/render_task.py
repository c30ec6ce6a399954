"""Celery task for render jobs.

Each task carries one ``{kind, payload}`` pair. Retries go through Celery's
own scheduler, using the same classification and backoff as the in-process
orchestrator.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from celery import Task

from dramagen.celery_app import celery_app
from dramagen.config import get_settings
from dramagen.jobs.orchestrator import RenderJobOrchestrator
from dramagen.jobs.queue import decode_payload
from dramagen.jobs.retry import RetryPolicy
from dramagen.schemas.job import JobStatus, RenderJob

logger = logging.getLogger(__name__)

settings = get_settings()


class TaskStateQueue:
    """Job queue view of a running Celery task.

    State reports become ``PROGRESS`` task states; rescheduling is left to
    ``Task.retry``.
    """

    def __init__(self, task: Task, job: RenderJob):
        self.task = task
        self.job = job

    async def next_job(self) -> RenderJob:
        raise RuntimeError("Celery workers receive jobs from the broker")

    async def requeue(self, job: RenderJob) -> None:
        raise RuntimeError("Celery jobs are rescheduled with Task.retry")

    def report(self, job: RenderJob) -> None:
        self.task.update_state(
            state="PROGRESS",
            meta={
                "status": job.status.value,
                "progress": job.progress,
                "attempts": job.attempts,
            },
        )

    def get(self, job_id: str) -> RenderJob | None:
        return self.job if job_id == self.job.id else None


def submit_job(kind: str, payload: dict[str, Any], max_attempts: int | None = None) -> str:
    """Validate a job and send it to the broker; returns the task id."""
    decode_payload(kind, payload)
    result = render_job_task.apply_async(
        args=[kind, payload],
        kwargs={"max_attempts": max_attempts or settings.job_max_attempts},
    )
    logger.info(f"[JOB] Submitted {result.id} kind={kind}")
    return result.id


def run_attempt(orchestrator: RenderJobOrchestrator, job: RenderJob) -> None:
    """Run one attempt on a private event loop (Celery tasks are sync).

    If the worker interrupts the attempt (soft time limit, revoke) the job task
    is cancelled and awaited before the loop closes, so the encoder or
    renderer child is terminated and the job reports ``cancelled``.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    attempt = loop.create_task(orchestrator.run_job(job, schedule_retry=False), name=f"render-job-{job.id}")
    try:
        loop.run_until_complete(attempt)
    except BaseException:
        if not attempt.done():
            logger.warning(f"[JOB] {job.id} interrupted, stopping its process")
            attempt.cancel()
            loop.run_until_complete(asyncio.gather(attempt, return_exceptions=True))
        raise
    finally:
        loop.close()
        asyncio.set_event_loop(None)


@celery_app.task(bind=True, max_retries=settings.job_max_attempts - 1)
def render_job_task(self, kind: str, payload: dict, max_attempts: int | None = None) -> dict:
    """
    Execute one render job attempt as a Celery task.

    Args:
        kind: Job kind, e.g. ``concat`` or ``detect_shots``
        payload: Kind-specific parameters
        max_attempts: Total attempts allowed, first run included

    Returns:
        dict with the job's final status, result and error
    """
    job = RenderJob(
        id=self.request.id or "local",
        payload=decode_payload(kind, payload),
        attempts=self.request.retries,
        max_attempts=max_attempts or settings.job_max_attempts,
        created_at=datetime.now(UTC),
    )
    policy = RetryPolicy.from_settings()
    orchestrator = RenderJobOrchestrator(TaskStateQueue(self, job), concurrency=1, policy=policy)

    run_attempt(orchestrator, job)

    if job.status == JobStatus.RETRIED:
        countdown = policy.delay_ms(job.attempts - 1) / 1000
        raise self.retry(countdown=countdown, max_retries=job.max_attempts - 1)

    return job.model_dump(mode="json", exclude={"payload"})
