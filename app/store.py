"""Podcast Ad Orchestrator - Job store primitives.

Create / get / merge-component / transition operations over the
generation_jobs and job_components tables.

Concurrency rules:
- Every mutating primitive starts with _lock_job(), a no-op UPDATE on the job
  row. With SQLite this takes the database write lock at the start of the
  transaction, so merges for the same job are serialized and the
  "all components present?" check always sees every committed component.
- Component rows are keyed by (job_id, component) and inserted with
  ON CONFLICT DO NOTHING, so a re-delivered result can never overwrite the
  first one.
- Status changes are guarded with WHERE status = 'running'; only one caller
  can ever win a terminal transition.

Note:
    These functions do NOT commit. They flush and leave commit responsibility
    to the caller (one session per unit of work).
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.jobs import (
    ComponentStatus,
    InvalidTransitionError,
    JobAlreadyExistsError,
    JobErrorCode,
    JobNotFoundError,
    JobStatus,
    TERMINAL_STATUSES,
    UnknownComponentError,
    is_satisfied,
    is_terminal,
    required_components,
)
from app.models import GenerationJob, JobComponent, utc_now

logger = logging.getLogger(__name__)


# --- Result Types ---


@dataclass(frozen=True)
class ComponentResult:
    """Stored result for one component of a job."""

    status: str
    url: str | None = None
    provider_request_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    received_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ComponentStatus.SUCCEEDED and bool(self.url)


@dataclass
class JobSnapshot:
    """Point-in-time view of a job and its component results."""

    job_id: str
    owner_id: str
    job_type: str
    status: str
    input: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    components: dict[str, ComponentResult] = field(default_factory=dict)
    output: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def required_components(self) -> tuple[str, ...]:
        return tuple(str(c) for c in required_components(self.job_type))

    @property
    def missing_components(self) -> tuple[str, ...]:
        """Required components without a succeeded result."""
        return tuple(
            c
            for c in self.required_components
            if c not in self.components or not self.components[c].succeeded
        )


@dataclass(frozen=True)
class MergeOutcome:
    """Result of merge_component().

    Attributes:
        applied: True if this call stored the result (False for duplicates
            and for jobs already in a terminal state).
        job_satisfied: True if this call applied the result AND every
            required component now has a succeeded result.
    """

    applied: bool
    job_satisfied: bool


# --- Helpers ---


def generate_job_id() -> str:
    """Generate a unique job ID.

    Uses UUID4 for uniqueness. Format: uuid4 hex (32 chars).
    """
    return uuid.uuid4().hex


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _find_job(session: Session, job_id: str) -> GenerationJob | None:
    stmt = (
        select(GenerationJob)
        .where(GenerationJob.job_id == job_id)
        .execution_options(populate_existing=True)
    )
    return session.execute(stmt).scalar_one_or_none()


def _lock_job(session: Session, job_id: str) -> GenerationJob:
    """Take the write lock for a job row and return the fresh row.

    The UPDATE assigns updated_at to itself, so no data changes.

    Raises:
        JobNotFoundError: If the job does not exist.
    """
    stmt = (
        update(GenerationJob)
        .where(GenerationJob.job_id == job_id)
        .values(updated_at=GenerationJob.updated_at)
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount == 0:
        raise JobNotFoundError(job_id)

    job = _find_job(session, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


def _check_component(job: GenerationJob, component: str) -> None:
    if component not in {str(c) for c in required_components(job.job_type)}:
        raise UnknownComponentError(job.job_id, component)


def _succeeded_components(session: Session, job_id: str) -> set[str]:
    stmt = select(JobComponent.component).where(
        JobComponent.job_id == job_id,
        JobComponent.status == ComponentStatus.SUCCEEDED,
        JobComponent.url.is_not(None),
        JobComponent.url != "",
    )
    return set(session.execute(stmt).scalars().all())


def _insert_component(session: Session, values: dict[str, Any]) -> bool:
    """Insert a component row unless one already exists. Returns True if inserted."""
    stmt = (
        sqlite_insert(JobComponent.__table__)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["job_id", "component"])
    )
    result = session.execute(stmt)
    session.flush()
    return result.rowcount == 1


def _to_snapshot(session: Session, job: GenerationJob) -> JobSnapshot:
    stmt = select(JobComponent).where(JobComponent.job_id == job.job_id)
    rows = session.execute(stmt.execution_options(populate_existing=True)).scalars().all()

    components = {
        row.component: ComponentResult(
            status=row.status,
            url=row.url,
            provider_request_id=row.provider_request_id,
            error_code=row.error_code,
            error_message=row.error_message,
            received_at=_as_utc(row.received_at),
        )
        for row in rows
    }

    return JobSnapshot(
        job_id=job.job_id,
        owner_id=job.owner_id,
        job_type=job.job_type,
        status=job.status,
        input=json.loads(job.input_json),
        output=json.loads(job.output_json) if job.output_json else None,
        components=components,
        error_code=job.error_code,
        error_message=job.error_message,
        created_at=_as_utc(job.created_at),
        updated_at=_as_utc(job.updated_at),
        finished_at=_as_utc(job.finished_at),
    )


# --- Store Operations ---


def create_job(
    session: Session,
    owner_id: str,
    job_type: str,
    input_data: dict[str, Any],
    job_id: str | None = None,
) -> JobSnapshot:
    """Persist a new job in the running state with no component results.

    Args:
        session: Active database session.
        owner_id: Requesting user identifier.
        job_type: Job type discriminator (must be registered).
        input_data: Per-component generation parameters, keyed by component name.
        job_id: Optional identifier. Generated when omitted.

    Returns:
        Snapshot of the created job.

    Raises:
        UnknownJobTypeError: If job_type has no registered component set.
        JobAlreadyExistsError: If job_id is already present.
    """
    required_components(job_type)
    job_id = job_id or generate_job_id()

    if _find_job(session, job_id) is not None:
        raise JobAlreadyExistsError(job_id)

    now = utc_now()
    job = GenerationJob(
        job_id=job_id,
        owner_id=owner_id,
        job_type=job_type,
        status=JobStatus.RUNNING,
        input_json=json.dumps(input_data, sort_keys=True),
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise JobAlreadyExistsError(job_id) from e

    logger.info("Created job: job_id=%s, owner_id=%s, type=%s", job_id, owner_id, job_type)
    return _to_snapshot(session, job)


def get_job(session: Session, job_id: str, owner_id: str | None = None) -> JobSnapshot:
    """Return the current snapshot of a job.

    Args:
        session: Active database session.
        job_id: The job ID.
        owner_id: If given, the job must belong to this owner.

    Raises:
        JobNotFoundError: If the job does not exist in the (owner's) namespace.
    """
    job = _find_job(session, job_id)
    if job is None or (owner_id is not None and job.owner_id != owner_id):
        raise JobNotFoundError(job_id)
    return _to_snapshot(session, job)


def merge_component(
    session: Session,
    job_id: str,
    component: str,
    url: str,
    provider_request_id: str | None = None,
) -> MergeOutcome:
    """Set a component's result if it is not already set.

    Args:
        session: Active database session.
        job_id: The job ID.
        component: Component name (must be required by the job type).
        url: Resolved media URL; must be non-empty.
        provider_request_id: Optional provider run identifier.

    Returns:
        MergeOutcome; job_satisfied tells the caller this call completed the
        component set and the job should transition to completed.

    Raises:
        JobNotFoundError: If the job does not exist.
        UnknownComponentError: If component is not part of the job type.
        ValueError: If url is empty.
    """
    if not url or not url.strip():
        raise ValueError("component url must be non-empty")

    job = _lock_job(session, job_id)
    _check_component(job, component)

    if is_terminal(job.status):
        return MergeOutcome(applied=False, job_satisfied=False)

    applied = _insert_component(
        session,
        {
            "job_id": job_id,
            "component": component,
            "status": ComponentStatus.SUCCEEDED.value,
            "url": url,
            "provider_request_id": provider_request_id,
            "received_at": utc_now(),
        },
    )
    if not applied:
        logger.info("Duplicate component result ignored: job_id=%s, component=%s", job_id, component)
        return MergeOutcome(applied=False, job_satisfied=False)

    satisfied = is_satisfied(job.job_type, _succeeded_components(session, job_id))
    logger.info(
        "Merged component: job_id=%s, component=%s, satisfied=%s", job_id, component, satisfied
    )
    return MergeOutcome(applied=True, job_satisfied=satisfied)


def record_component_failure(
    session: Session,
    job_id: str,
    component: str,
    error_message: str,
    error_code: str = JobErrorCode.COMPONENT_FAILED,
    provider_request_id: str | None = None,
) -> bool:
    """Record a provider-reported failure for a component, set-once.

    Returns:
        True if the failure was stored; False if the component already had a
        result or the job is terminal.

    Raises:
        JobNotFoundError: If the job does not exist.
        UnknownComponentError: If component is not part of the job type.
    """
    job = _lock_job(session, job_id)
    _check_component(job, component)

    if is_terminal(job.status):
        return False

    return _insert_component(
        session,
        {
            "job_id": job_id,
            "component": component,
            "status": ComponentStatus.FAILED.value,
            "url": None,
            "provider_request_id": provider_request_id,
            "error_code": str(error_code),
            "error_message": error_message,
            "received_at": utc_now(),
        },
    )


def transition_job(
    session: Session,
    job_id: str,
    target: str,
    error_code: str | None = None,
    error_message: str | None = None,
    output: dict[str, Any] | None = None,
) -> bool:
    """Move a running job to a terminal status.

    Args:
        session: Active database session.
        job_id: The job ID.
        target: completed, failed or canceled.
        error_code: Optional error code (failed/canceled).
        error_message: Optional error message (failed/canceled).
        output: Output manifest (completed only).

    Returns:
        True if this call performed the transition; False if the job was
        already terminal.

    Raises:
        JobNotFoundError: If the job does not exist.
        InvalidTransitionError: If target is not a terminal status.
    """
    job = _lock_job(session, job_id)

    if target not in TERMINAL_STATUSES:
        raise InvalidTransitionError(job_id, job.status, target)

    now = utc_now()
    values: dict[str, Any] = {
        "status": str(target),
        "finished_at": now,
        "updated_at": now,
        "error_code": str(error_code) if error_code else None,
        "error_message": error_message,
    }
    if output is not None:
        values["output_json"] = json.dumps(output)

    stmt = (
        update(GenerationJob)
        .where(GenerationJob.job_id == job_id, GenerationJob.status == JobStatus.RUNNING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    transitioned = session.execute(stmt).rowcount == 1
    session.flush()

    if transitioned:
        logger.info("Job transitioned: job_id=%s, %s -> %s", job_id, job.status, target)
    else:
        logger.info(
            "Job transition skipped (already %s): job_id=%s, target=%s", job.status, job_id, target
        )
    return transitioned


# --- Supervision ---


def find_stale_running_jobs(
    session: Session,
    max_age_seconds: int,
    now: datetime | None = None,
) -> list[str]:
    """Find running jobs created more than max_age_seconds ago.

    Returns:
        Job IDs, oldest first.
    """
    cutoff = (now or utc_now()) - timedelta(seconds=max_age_seconds)
    stmt = (
        select(GenerationJob.job_id)
        .where(GenerationJob.status == JobStatus.RUNNING, GenerationJob.created_at < cutoff)
        .order_by(GenerationJob.created_at)
    )
    return list(session.execute(stmt).scalars().all())


def expire_stale_jobs(
    session: Session,
    max_age_seconds: int,
    now: datetime | None = None,
) -> list[str]:
    """Fail running jobs that outlived their deadline.

    Args:
        session: Database session.
        max_age_seconds: Deadline measured from created_at.
        now: Optional clock override.

    Returns:
        IDs of the jobs this call failed.
    """
    expired = []
    for job_id in find_stale_running_jobs(session, max_age_seconds, now=now):
        snapshot = get_job(session, job_id)
        missing = ", ".join(snapshot.missing_components) or "none"
        if transition_job(
            session,
            job_id,
            JobStatus.FAILED,
            error_code=JobErrorCode.JOB_TIMEOUT,
            error_message=f"Timed out after {max_age_seconds}s waiting for: {missing}",
        ):
            logger.warning("Expired stale job: job_id=%s, missing=%s", job_id, missing)
            expired.append(job_id)
    return expired
