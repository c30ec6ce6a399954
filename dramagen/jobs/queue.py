"""Job queue interface and the in-process implementation."""

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

import pydantic

from dramagen.config import get_settings
from dramagen.exceptions import UnknownJobKindError, ValidationError
from dramagen.jobs.events import JobEventManager
from dramagen.schemas.job import JOB_PAYLOAD_ADAPTER, JobPayload, JobStatus, RenderJob

logger = logging.getLogger(__name__)

JOB_KINDS = frozenset(
    {
        "trim",
        "concat",
        "mix_audio",
        "detect_shots",
        "sample_keyframes",
        "render_composition",
        "captioned_video",
    }
)


def decode_payload(kind: str, payload: dict[str, Any]) -> JobPayload:
    """Turn a ``{kind, payload}`` pair into its typed payload.

    Raises:
        UnknownJobKindError: If ``kind`` has no handler
        ValidationError: If the payload does not match the kind's schema
    """
    if kind not in JOB_KINDS:
        raise UnknownJobKindError(f"Unknown job kind: {kind}")
    try:
        return JOB_PAYLOAD_ADAPTER.validate_python({**payload, "kind": kind})
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {kind} payload: {e.errors(include_url=False)}") from e


class JobQueue(Protocol):
    async def submit(self, kind: str, payload: dict[str, Any], max_attempts: int | None = None) -> str: ...

    async def next_job(self) -> RenderJob: ...

    async def requeue(self, job: RenderJob) -> None: ...

    def report(self, job: RenderJob) -> None: ...

    def get(self, job_id: str) -> RenderJob | None: ...


class InMemoryJobQueue:
    """FIFO queue of jobs held in this process."""

    def __init__(self, default_max_attempts: int | None = None, events: JobEventManager | None = None):
        self.default_max_attempts = default_max_attempts or get_settings().job_max_attempts
        self.events = events or JobEventManager()
        self._jobs: dict[str, RenderJob] = {}
        self._waiting: asyncio.Queue[str] = asyncio.Queue()

    async def submit(self, kind: str, payload: dict[str, Any], max_attempts: int | None = None) -> str:
        job = RenderJob(
            id=str(uuid.uuid4()),
            payload=decode_payload(kind, payload),
            max_attempts=max_attempts or self.default_max_attempts,
            created_at=datetime.now(UTC),
        )
        self._jobs[job.id] = job
        await self._waiting.put(job.id)
        logger.info(f"[JOB] Submitted {job.id} kind={kind}")
        return job.id

    async def next_job(self) -> RenderJob:
        """Wait for the next waiting job, skipping ones cancelled while queued."""
        while True:
            job_id = await self._waiting.get()
            job = self._jobs[job_id]
            if job.status == JobStatus.WAITING:
                return job

    async def requeue(self, job: RenderJob) -> None:
        await self._waiting.put(job.id)

    def report(self, job: RenderJob) -> None:
        self.events.publish(job)

    def get(self, job_id: str) -> RenderJob | None:
        return self._jobs.get(job_id)

    def jobs(self) -> list[RenderJob]:
        return list(self._jobs.values())

    @property
    def waiting_count(self) -> int:
        return self._waiting.qsize()
