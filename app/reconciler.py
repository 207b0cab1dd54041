"""Podcast Ad Orchestrator - Callback reconciler.

The single point where asynchronous provider results are merged into job state.

Algorithm per callback (job_id, component, result | error):
1. Unknown job -> JobNotFoundError (nothing is created).
2. Component not required by the job type -> UnknownComponentError.
3. Job already terminal -> no-op (late arrival).
4. Provider reported a failure -> the component is recorded as failed and the
   whole job fails immediately (fail-fast policy). A job that cannot get all of
   its components will never complete, so waiting for the other callbacks only
   delays the outcome.
5. Success -> set-once merge. A duplicate is a no-op. If the merge completes
   the required component set, the job moves to completed and its output
   manifest is written.

Callbacks may arrive in any order, more than once, or never.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from app.jobs import JobErrorCode, JobStatus, UnknownComponentError
from app.schemas import ProviderCallback
from app.store import (
    JobSnapshot,
    get_job,
    merge_component,
    record_component_failure,
    transition_job,
)

logger = logging.getLogger(__name__)


class ReconcileOutcome(StrEnum):
    """What reconciliation did with a callback."""

    MERGED = "merged"
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED_TERMINAL = "ignored_terminal"
    IGNORED_DUPLICATE = "ignored_duplicate"


@dataclass(frozen=True)
class ReconcileResult:
    """Result of reconciling one callback."""

    job_id: str
    component: str
    outcome: ReconcileOutcome
    job_status: str


def build_output_manifest(job: JobSnapshot) -> dict[str, Any]:
    """Build the composed output reference for a satisfied job.

    The manifest lists one track per required component, in the job type's
    component order, with the mix parameters from the job input. Rendering
    the mix from the manifest happens outside this service.
    """
    tracks = []
    for component in job.required_components:
        params = job.input.get(component) or {}
        tracks.append(
            {
                "component": component,
                "url": job.components[component].url,
                "volume": params.get("volume", 1),
                "offsetInMilliseconds": params.get("offsetInMilliseconds", 0),
                "durationInSeconds": params.get("durationInSeconds", 1),
            }
        )
    return {"jobId": job.job_id, "type": job.job_type, "tracks": tracks}


def _ignored(session: Session, job_id: str, component: str) -> ReconcileResult:
    # Merge was not applied: either the job went terminal or the component was already set
    current = get_job(session, job_id)
    outcome = (
        ReconcileOutcome.IGNORED_TERMINAL
        if current.is_terminal
        else ReconcileOutcome.IGNORED_DUPLICATE
    )
    logger.info("Callback ignored (%s): job_id=%s, component=%s", outcome, job_id, component)
    return ReconcileResult(job_id, component, outcome, current.status)


def reconcile_callback(
    session: Session,
    job_id: str,
    component: str,
    callback: ProviderCallback,
) -> ReconcileResult:
    """Merge one provider callback into job state.

    Note:
        Does NOT commit. Use handle_provider_callback() for a full unit of work.

    Args:
        session: Database session.
        job_id: The job the callback belongs to.
        component: The component the callback reports on.
        callback: Validated callback payload.

    Returns:
        ReconcileResult describing the outcome.

    Raises:
        JobNotFoundError: If the job does not exist.
        UnknownComponentError: If component is not part of the job type.
    """
    job = get_job(session, job_id)

    if component not in job.required_components:
        raise UnknownComponentError(job_id, component)

    if job.is_terminal:
        logger.info(
            "Callback for terminal job ignored: job_id=%s, status=%s, component=%s",
            job_id,
            job.status,
            component,
        )
        return ReconcileResult(job_id, component, ReconcileOutcome.IGNORED_TERMINAL, job.status)

    if callback.is_failure:
        reason = callback.error or "provider reported failure"
        if not record_component_failure(
            session, job_id, component, reason, provider_request_id=callback.id
        ):
            return _ignored(session, job_id, component)

        transition_job(
            session,
            job_id,
            JobStatus.FAILED,
            error_code=JobErrorCode.COMPONENT_FAILED,
            error_message=f"{component} generation failed: {reason}",
        )
        logger.warning("Component failed, job failed: job_id=%s, component=%s", job_id, component)
        return ReconcileResult(job_id, component, ReconcileOutcome.FAILED, JobStatus.FAILED)

    merge = merge_component(session, job_id, component, callback.url or "", callback.id)
    if not merge.applied:
        return _ignored(session, job_id, component)

    if not merge.job_satisfied:
        return ReconcileResult(job_id, component, ReconcileOutcome.MERGED, JobStatus.RUNNING)

    satisfied = get_job(session, job_id)
    transition_job(session, job_id, JobStatus.COMPLETED, output=build_output_manifest(satisfied))
    logger.info("Job completed: job_id=%s (last component: %s)", job_id, component)
    return ReconcileResult(job_id, component, ReconcileOutcome.COMPLETED, JobStatus.COMPLETED)


def handle_provider_callback(
    SessionFactory: sessionmaker,
    job_id: str,
    component: str,
    body: ProviderCallback | dict[str, Any],
) -> ReconcileResult:
    """Reconcile a callback in its own session and commit.

    Args:
        SessionFactory: Session factory for the job database.
        job_id: The job the callback belongs to.
        component: The component the callback reports on.
        body: Callback payload, validated if given as a dict.

    Returns:
        ReconcileResult describing the outcome.
    """
    callback = body if isinstance(body, ProviderCallback) else ProviderCallback.model_validate(body)

    session = SessionFactory()
    try:
        result = reconcile_callback(session, job_id, component, callback)
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def make_callback_sink(SessionFactory: sessionmaker):
    """Bind handle_provider_callback to a session factory.

    The returned callable has the (job_id, component, body) shape providers
    use to deliver results in-process.
    """
    return partial(handle_provider_callback, SessionFactory)
