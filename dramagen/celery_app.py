"""Celery application configuration."""

from celery import Celery

from dramagen.config import get_settings

settings = get_settings()

celery_app = Celery(
    "dramagen",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["dramagen.tasks.render_task"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max per task
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,  # Encodes are CPU bound; take one job at a time
    worker_concurrency=settings.worker_concurrency,
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,  # Requeue if worker dies
)
