"""Podcast Ad Orchestrator - Huey task queue configuration.

Huey setup with SQLite backend. Job creation never waits on providers: the
intake endpoint commits the job and enqueues dispatch_job_task, and the
consumer starts the provider runs.

How to run:
1. Start the job API:
   uvicorn services.job_api.main:app --reload

2. Start the Huey consumer (processes queued tasks):
   huey_consumer.py app.huey_app.huey

The consumer also runs the periodic stale-job sweep.
"""

from __future__ import annotations

import logging
from pathlib import Path

from huey import SqliteHuey, crontab

from app.config import HUEY_DB_PATH, JOB_TIMEOUT_SECONDS, QUEUE_DIR, STALE_JOB_SWEEP_MINUTES

logger = logging.getLogger(__name__)


def _ensure_queue_dir() -> None:
    """Ensure the queue directory exists."""
    Path(QUEUE_DIR).mkdir(parents=True, exist_ok=True)


# Ensure queue directory exists before creating Huey instance
_ensure_queue_dir()

huey = SqliteHuey(
    name="podcast_ad_orchestrator",
    filename=str(HUEY_DB_PATH),
    immediate=False,  # Tasks queued for consumer processing
)


def run_dispatch(job_id: str, SessionFactory=None, provider=None, config=None) -> dict:
    """Load a job and dispatch its components.

    Args:
        job_id: The job to dispatch.
        SessionFactory: Optional session factory. Defaults to init_db().
        provider: Optional provider override. Defaults to build_provider(config).
        config: Optional ProviderConfig. Defaults to load_provider_config().

    Returns:
        Dict with the dispatch report (for logging/debugging).
    """
    # Import here to avoid circular imports
    from app.config import load_provider_config
    from app.db import init_db
    from app.dispatcher import GenerationDispatcher
    from app.providers import build_provider
    from app.reconciler import make_callback_sink
    from app.store import get_job

    if SessionFactory is None:
        _, SessionFactory = init_db()
    config = config or load_provider_config()
    owns_provider = provider is None
    provider = provider or build_provider(config, deliver=make_callback_sink(SessionFactory))

    session = SessionFactory()
    try:
        job = get_job(session, job_id)
    finally:
        session.close()

    try:
        report = GenerationDispatcher(provider, config).dispatch(job)
    finally:
        if owns_provider:
            provider.close()
    return report.as_dict()


@huey.task()
def dispatch_job_task(job_id: str) -> dict:
    """Huey task to start provider runs for a newly created job."""
    logger.info("Dispatch task started for job_id=%s", job_id)
    result = run_dispatch(job_id)
    logger.info("Dispatch task completed for job_id=%s: %s", job_id, result)
    return result


@huey.periodic_task(crontab(minute=STALE_JOB_SWEEP_MINUTES))
def sweep_stale_jobs_task() -> list[str]:
    """Periodic task failing running jobs that outlived JOB_TIMEOUT_SECONDS."""
    from app.db import init_db
    from app.store import expire_stale_jobs

    _, SessionFactory = init_db()
    session = SessionFactory()
    try:
        expired = expire_stale_jobs(session, JOB_TIMEOUT_SECONDS)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Stale job sweep failed")
        raise
    finally:
        session.close()

    if expired:
        logger.info("Stale job sweep failed %d job(s): %s", len(expired), expired)
    return expired


def enqueue_job_dispatch(job_id: str) -> None:
    """Enqueue dispatch for the given job.

    Non-blocking: returns immediately even if the Huey consumer is not running.
    The task is persisted in SQLite and processed when the consumer starts.

    Args:
        job_id: The job to dispatch.
    """
    logger.info("Enqueueing dispatch for job_id=%s", job_id)
    dispatch_job_task(job_id)
