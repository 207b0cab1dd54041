"""Podcast Ad Orchestrator - SQLAlchemy ORM models.

Database tables:
1. generation_jobs
2. job_components
"""

from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class GenerationJob(Base):
    """One user-initiated request to produce a composite ad asset.

    Jobs are namespaced by owner: lookups through the API always carry
    owner_id alongside job_id.
    """

    __tablename__ = "generation_jobs"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Unique job identifier (immutable)
    job_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    # Requesting user (immutable)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Discriminator selecting the required component set
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="running", index=True)

    # Per-component generation parameters as JSON string (immutable)
    input_json: Mapped[str] = mapped_column(Text, nullable=False)

    # Composed output manifest as JSON string, set only on completion
    output_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Error tracking for failed/canceled jobs
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_jobs_owner_job", "owner_id", "job_id"),
        Index("ix_jobs_status_created", "status", "created_at"),
    )


class JobComponent(Base):
    """Result of one component of a job, as reported by its provider callback.

    One row per (job_id, component). The unique constraint is what makes
    component results set-once: re-delivered callbacks cannot add a second row.
    """

    __tablename__ = "job_components"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("generation_jobs.job_id"), nullable=False, index=True
    )
    component: Mapped[str] = mapped_column(String(32), nullable=False)

    # "succeeded" or "failed"
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    # Resolved media URL (empty for failed components)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provider run identifier, if the callback carried one
    provider_request_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (UniqueConstraint("job_id", "component", name="uq_job_component"),)
