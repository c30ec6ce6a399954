"""Worker entrypoint.

Configures logging and runs the Celery worker that executes render jobs.
"""

import logging
import subprocess
import sys

from dramagen.config import get_settings

logger = logging.getLogger(__name__)


def worker_command() -> list[str]:
    settings = get_settings()
    return [
        "celery",
        "-A", "dramagen.celery_app",
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        f"--concurrency={settings.worker_concurrency}",
    ]


def run_celery_worker() -> int:
    """Run the Celery worker until it exits; returns its exit status."""
    command = worker_command()
    logger.info(f"[WORKER] Starting: {' '.join(command)}")
    completed = subprocess.run(command)
    if completed.returncode != 0:
        logger.error(f"[WORKER] Celery exited with code {completed.returncode}")
    return completed.returncode


if __name__ == "__main__":
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    sys.exit(run_celery_worker())
