"""Podcast Ad Orchestrator - Job types, state machine and error taxonomy.

Job lifecycle:

    running --(all required components succeed)--> completed
    running --(a component reports failure)------> failed
    running --(supervisory timeout)--------------> failed
    running --(external cancellation)------------> canceled

running is the only initial state. completed, failed and canceled are terminal:
no further transitions, no further component merges.
"""

from __future__ import annotations

from enum import StrEnum


class JobStatus(StrEnum):
    """Job status values."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class JobType(StrEnum):
    """Job type discriminator."""

    PODCAST_AD = "podcastAd"


class Component(StrEnum):
    """Independently generated sub-assets of a job."""

    MUSIC = "music"
    VOICE_OVER = "voiceOver"


class ComponentStatus(StrEnum):
    """Status of a stored component result."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED})

# Ordered: dispatch order and output track order follow this tuple
REQUIRED_COMPONENTS: dict[str, tuple[Component, ...]] = {
    JobType.PODCAST_AD.value: (Component.MUSIC, Component.VOICE_OVER),
}


def required_components(job_type: str) -> tuple[Component, ...]:
    """Return the components a job type requires.

    Raises:
        UnknownJobTypeError: If the job type is not registered.
    """
    try:
        return REQUIRED_COMPONENTS[job_type]
    except KeyError:
        raise UnknownJobTypeError(job_type) from None


def is_terminal(status: str) -> bool:
    """True if no further transitions are allowed from this status."""
    return status in TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
    """Check whether current -> target is a legal job transition."""
    return current == JobStatus.RUNNING and target in TERMINAL_STATUSES


def is_satisfied(job_type: str, succeeded: set[str] | frozenset[str]) -> bool:
    """True if every component required by job_type has succeeded."""
    return all(str(c) in succeeded for c in required_components(job_type))


# --- Error Codes ---


class JobErrorCode(StrEnum):
    """Error codes for job orchestration."""

    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_COMPONENT = "UNKNOWN_COMPONENT"
    UNKNOWN_JOB_TYPE = "UNKNOWN_JOB_TYPE"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    DISPATCH_FAILED = "DISPATCH_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    COMPONENT_FAILED = "COMPONENT_FAILED"
    JOB_TIMEOUT = "JOB_TIMEOUT"
    CANCELED = "CANCELED"
    CONFIG_INVALID = "CONFIG_INVALID"
    CREATE_FAILED = "CREATE_FAILED"
    RECONCILE_FAILED = "RECONCILE_FAILED"


class JobError(Exception):
    """Base exception for job orchestration errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class JobNotFoundError(JobError):
    """Referenced job does not exist (or is outside the owner's namespace)."""

    def __init__(self, job_id: str, error_code: str = JobErrorCode.NOT_FOUND, message: str = ""):
        self.job_id = job_id
        super().__init__(error_code, message or f"Job not found: {job_id}")


class UnknownComponentError(JobNotFoundError):
    """Component name is not part of the job's required set."""

    def __init__(self, job_id: str, component: str):
        self.component = component
        super().__init__(
            job_id,
            JobErrorCode.UNKNOWN_COMPONENT,
            f"Unknown component '{component}' for job {job_id}",
        )


class UnknownJobTypeError(JobError):
    """Job type has no registered component set."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(JobErrorCode.UNKNOWN_JOB_TYPE, f"Unknown job type: {job_type}")


class JobAlreadyExistsError(JobError):
    """Identifier collision on creation."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(JobErrorCode.ALREADY_EXISTS, f"Job already exists: {job_id}")


class DispatchFailureError(JobError):
    """A provider rejected a generation request synchronously.

    Scoped to one component; never aborts sibling dispatches.
    """

    def __init__(self, job_id: str, component: str, reason: str):
        self.job_id = job_id
        self.component = component
        self.reason = reason
        super().__init__(
            JobErrorCode.DISPATCH_FAILED,
            f"Dispatch failed for job {job_id} component {component}: {reason}",
        )


class InvalidTransitionError(JobError):
    """Requested status change is not allowed by the state machine."""

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            JobErrorCode.INVALID_TRANSITION,
            f"Job {job_id} cannot move from '{current}' to '{target}'",
        )


class ConfigError(JobError):
    """Invalid or missing configuration."""

    def __init__(self, message: str):
        super().__init__(JobErrorCode.CONFIG_INVALID, message)
