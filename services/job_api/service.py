"""Podcast Ad Orchestrator - Job API service logic.

Implements:
- Job intake: build the initial job record, persist it, enqueue dispatch
- Owner-scoped job lookup
- Cancellation (forced running -> canceled)

Provider dispatch is never awaited here; dispatch problems are component
scoped and never surface in the intake response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.jobs import (
    InvalidTransitionError,
    JobError,
    JobErrorCode,
    JobStatus,
)
from app.schemas import CreateJobRequest
from app.store import JobSnapshot, create_job, get_job, transition_job

logger = logging.getLogger(__name__)


class JobCreateFailedError(JobError):
    """Job record could not be persisted."""

    def __init__(self, reason: str):
        super().__init__(JobErrorCode.CREATE_FAILED, f"Job creation failed: {reason}")


@dataclass
class IntakeResult:
    """Result of a successful intake."""

    job_id: str
    status: str


def create_generation_job(session: Session, request: CreateJobRequest) -> IntakeResult:
    """Create a job in the running state and enqueue its dispatch.

    Args:
        session: Active database session.
        request: Validated intake request.

    Returns:
        IntakeResult with the new job_id.

    Raises:
        JobAlreadyExistsError: On identifier collision.
        JobCreateFailedError: If the commit fails.

    Note:
        This function commits the session on success.
    """
    input_data = request.input.model_dump(by_alias=True, exclude_none=True)
    snapshot = create_job(session, request.owner_id, request.type, input_data)

    try:
        session.commit()
    except Exception as e:
        session.rollback()
        raise JobCreateFailedError(f"Database commit failed: {e}") from e

    logger.info("Started new %s generation job: %s", snapshot.job_type, snapshot.job_id)

    # Enqueue dispatch (non-blocking)
    _enqueue_dispatch_safe(snapshot.job_id)

    return IntakeResult(job_id=snapshot.job_id, status=snapshot.status)


def get_owner_job(session: Session, owner_id: str, job_id: str) -> JobSnapshot:
    """Look up a job inside the owner's namespace.

    Raises:
        JobNotFoundError: If the job does not exist or belongs to another owner.
    """
    return get_job(session, job_id, owner_id=owner_id)


def cancel_job(session: Session, owner_id: str, job_id: str) -> JobSnapshot:
    """Force a running job to canceled.

    Late callbacks for a canceled job are ignored by the reconciler.

    Raises:
        JobNotFoundError: If the job is not in the owner's namespace.
        InvalidTransitionError: If the job is already terminal.

    Note:
        This function commits the session on success.
    """
    job = get_job(session, job_id, owner_id=owner_id)
    if job.is_terminal:
        raise InvalidTransitionError(job_id, job.status, JobStatus.CANCELED)

    transitioned = transition_job(
        session,
        job_id,
        JobStatus.CANCELED,
        error_code=JobErrorCode.CANCELED,
        error_message="Canceled by request",
    )
    if not transitioned:
        # Lost a race with a callback or the sweep
        session.rollback()
        current = get_job(session, job_id)
        raise InvalidTransitionError(job_id, current.status, JobStatus.CANCELED)

    session.commit()
    logger.info("Canceled job: job_id=%s, owner_id=%s", job_id, owner_id)
    return get_job(session, job_id)


# --- Internal Helpers ---


def _enqueue_dispatch_safe(job_id: str) -> None:
    """Enqueue job dispatch, logging errors instead of raising.

    This is non-blocking and best-effort. If Huey is not available or
    enqueueing fails, the job stays running and the supervisory sweep
    eventually fails it.

    Args:
        job_id: The job to dispatch.
    """
    try:
        from app.huey_app import enqueue_job_dispatch

        enqueue_job_dispatch(job_id)
        logger.debug("Enqueued dispatch for job_id=%s", job_id)
    except Exception:
        # Best-effort: log but do not fail intake
        logger.warning(
            "Failed to enqueue dispatch for job_id=%s (non-fatal)",
            job_id,
            exc_info=True,
        )
