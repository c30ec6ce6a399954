"""Job event pub/sub.

Subscribers receive a snapshot every time a job changes status or progress.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from dramagen.schemas.job import JobStatus, RenderJob

logger = logging.getLogger(__name__)


@dataclass
class JobEvent:
    """Snapshot of a job at the moment it was reported."""

    job_id: str
    status: JobStatus
    progress: float
    attempts: int
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    error_code: str | None = None

    @classmethod
    def from_job(cls, job: RenderJob) -> "JobEvent":
        return cls(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            attempts=job.attempts,
            error_code=job.error.code if job.error else None,
        )


class JobEventManager:
    """Manages per-job subscriptions and event publishing."""

    def __init__(self) -> None:
        # Map job_id -> set of asyncio.Queue for each subscriber
        self._subscribers: dict[str, set[asyncio.Queue[JobEvent]]] = defaultdict(set)

    async def subscribe(self, job_id: str) -> AsyncGenerator[JobEvent, None]:
        """Yield events for one job until it reaches a terminal status."""
        queue: asyncio.Queue[JobEvent] = asyncio.Queue()
        self._subscribers[job_id].add(queue)
        logger.debug(f"[JOB] New subscriber for {job_id}. Total: {len(self._subscribers[job_id])}")

        try:
            while True:
                event = await queue.get()
                yield event
                if event.status.is_terminal:
                    return
        finally:
            self._subscribers[job_id].discard(queue)
            if not self._subscribers[job_id]:
                del self._subscribers[job_id]

    def publish(self, job: RenderJob) -> int:
        """Send a snapshot of ``job`` to its subscribers; returns how many were notified."""
        subscribers = self._subscribers.get(job.id)
        if not subscribers:
            return 0
        event = JobEvent.from_job(job)
        for queue in subscribers:
            queue.put_nowait(event)
        return len(subscribers)

    def get_subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, set()))
