"""Podcast Ad Orchestrator - Job API FastAPI application.

Endpoints:
- POST /v1/jobs: create a generation job (returns immediately with jobId)
- GET  /v1/users/{owner_id}/jobs/{job_id}: inspect a job
- POST /v1/users/{owner_id}/jobs/{job_id}/cancel: cancel a running job
- POST /v1/callbacks/{job_id}/{component}: provider completion webhook

Run with:
    uvicorn services.job_api.main:app --reload  # dev server only
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db import init_db
from app.jobs import (
    InvalidTransitionError,
    JobAlreadyExistsError,
    JobError,
    JobErrorCode,
    JobNotFoundError,
    UnknownComponentError,
)
from app.reconciler import reconcile_callback
from app.schemas import (
    CallbackAck,
    CancelJobResponse,
    ComponentResultResponse,
    CreateJobRequest,
    CreateJobResponse,
    ErrorResponse,
    JobResponse,
    ProviderCallback,
)
from app.store import JobSnapshot
from services.job_api.service import cancel_job, create_generation_job, get_owner_job

logger = logging.getLogger(__name__)

# --- Database Setup ---

# Module-level session factory (initialized on startup)
_session_factory = None


def get_session_factory():
    """Get the session factory.

    Raises:
        RuntimeError: If session factory not initialized (app lifespan not invoked).
    """
    global _session_factory
    if _session_factory is None:
        raise RuntimeError("Session factory not initialized. App lifespan not invoked?")
    return _session_factory


def get_db_session():
    """Dependency that provides a database session."""
    SessionFactory = get_session_factory()
    session = SessionFactory()
    try:
        yield session
    finally:
        session.close()


# --- Lifespan ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler. Initializes the database on startup."""
    global _session_factory
    if _session_factory is None:
        _, _session_factory = init_db()
    yield


# --- FastAPI App ---


app = FastAPI(
    title="Podcast Ad Orchestrator - Job API",
    description="Generation job intake and provider callback service.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - NOT_FOUND / UNKNOWN_COMPONENT -> 404
    - ALREADY_EXISTS / INVALID_TRANSITION -> 409
    - everything else -> 500
    """
    if error_code in (JobErrorCode.NOT_FOUND, JobErrorCode.UNKNOWN_COMPONENT):
        return 404
    if error_code in (JobErrorCode.ALREADY_EXISTS, JobErrorCode.INVALID_TRANSITION):
        return 409
    return 500


def make_error_response(error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=error_code_to_status(error_code),
        content=ErrorResponse(
            error_code=str(error_code),
            error_message=error_message,
        ).model_dump(by_alias=True),
    )


def snapshot_to_response(job: JobSnapshot) -> JobResponse:
    """Convert a store snapshot to the API model."""
    return JobResponse(
        job_id=job.job_id,
        owner_id=job.owner_id,
        type=job.job_type,
        status=job.status,
        components={
            name: ComponentResultResponse(
                status=result.status,
                url=result.url,
                provider_request_id=result.provider_request_id,
                error_code=result.error_code,
                error_message=result.error_message,
                received_at=result.received_at,
            )
            for name, result in job.components.items()
        },
        input=job.input,
        output=job.output,
        error_code=job.error_code,
        error_message=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
        finished_at=job.finished_at,
    )


# --- Endpoints ---


@app.post(
    "/v1/jobs",
    response_model=CreateJobResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Job identifier collision"},
        500: {"model": ErrorResponse, "description": "Job creation failed"},
    },
    summary="Create a generation job",
    description="Create a podcast ad job and start generating its components.",
)
def create_job_endpoint(
    request: CreateJobRequest,
    session: Annotated[Session, Depends(get_db_session)],
):
    """Create a job and return its identifier without waiting on providers."""
    try:
        result = create_generation_job(session, request)
        return CreateJobResponse(job_id=result.job_id)
    except JobAlreadyExistsError as e:
        return make_error_response(e.error_code, e.message)
    except JobError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error during job creation")
        return make_error_response(
            JobErrorCode.CREATE_FAILED,
            "An unexpected error occurred while creating the job",
        )


@app.get(
    "/v1/users/{owner_id}/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
    summary="Get a job",
)
def get_job_endpoint(
    owner_id: str,
    job_id: str,
    session: Annotated[Session, Depends(get_db_session)],
):
    """Return the current job snapshot."""
    try:
        return snapshot_to_response(get_owner_job(session, owner_id, job_id))
    except JobNotFoundError as e:
        return make_error_response(e.error_code, e.message)


@app.post(
    "/v1/users/{owner_id}/jobs/{job_id}/cancel",
    response_model=CancelJobResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job already finished"},
    },
    summary="Cancel a running job",
)
def cancel_job_endpoint(
    owner_id: str,
    job_id: str,
    session: Annotated[Session, Depends(get_db_session)],
):
    """Force a running job to canceled."""
    try:
        job = cancel_job(session, owner_id, job_id)
        return CancelJobResponse(job_id=job.job_id, status=job.status)
    except JobNotFoundError as e:
        return make_error_response(e.error_code, e.message)
    except InvalidTransitionError as e:
        return make_error_response(e.error_code, e.message)


@app.post(
    "/v1/callbacks/{job_id}/{component}",
    response_model=CallbackAck,
    responses={500: {"model": ErrorResponse, "description": "Storage failure, retry later"}},
    summary="Provider completion callback",
)
def provider_callback_endpoint(
    job_id: str,
    component: str,
    callback: ProviderCallback,
    session: Annotated[Session, Depends(get_db_session)],
):
    """Reconcile a provider callback.

    Unknown jobs and components, late callbacks and duplicates are all
    acknowledged with 200 so providers stop retrying. Only storage failures
    return 500.
    """
    try:
        result = reconcile_callback(session, job_id, component, callback)
        session.commit()
        return CallbackAck(outcome=str(result.outcome))
    except UnknownComponentError as e:
        session.rollback()
        logger.warning("Callback for unknown component acknowledged: %s", e.message)
        return CallbackAck(outcome="unknown_component")
    except JobNotFoundError as e:
        session.rollback()
        logger.warning("Callback for unknown job acknowledged: %s", e.message)
        return CallbackAck(outcome="unknown_job")
    except Exception:
        session.rollback()
        logger.exception("Callback reconciliation failed: job_id=%s, component=%s", job_id, component)
        return make_error_response(
            JobErrorCode.RECONCILE_FAILED,
            "Callback could not be recorded, retry later",
        )


@app.get("/health", summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


# --- For testing: allow overriding session factory ---


def override_session_factory(factory):
    """Override the session factory for testing."""
    global _session_factory
    _session_factory = factory
