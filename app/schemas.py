"""Podcast Ad Orchestrator - Pydantic models for API validation.

Request/response models for the job API and provider callbacks.
Wire format uses camelCase field names; Python attributes are snake_case.
"""

from datetime import datetime  # noqa: I001
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with clients (camelCase on the wire)."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


# --- Generation Inputs ---


class MusicPrompt(WireModel):
    """Music prompt parameters."""

    genres: str = Field(default="", description="Comma separated genre tags")
    moods: str = Field(default="", description="Comma separated mood tags")
    themes: str = Field(default="", description="Comma separated theme tags")
    length: int = Field(default=0, ge=0, description="Requested track length in seconds")
    description: str | None = Field(default=None, description="Free-text music description")


class MusicInput(WireModel):
    """Generation parameters for the music component."""

    prompt: MusicPrompt = Field(default_factory=MusicPrompt)
    duration_in_seconds: float = Field(default=1, gt=0, description="Track duration")
    volume: float = Field(default=1, ge=0, description="Mix volume (1.0 = unchanged)")
    offset_in_milliseconds: int = Field(default=0, ge=0, description="Start offset in the mix")


class VoiceOverPrompt(WireModel):
    """Voice-over prompt parameters."""

    voice: str = Field(default="", description="Voice identifier")
    input: str = Field(default="", description="Script text to be spoken")


class VoiceOverInput(WireModel):
    """Generation parameters for the voice-over component."""

    prompt: VoiceOverPrompt = Field(default_factory=VoiceOverPrompt)
    duration_in_seconds: float = Field(default=1, gt=0, description="Voice-over duration")
    volume: float = Field(default=1, ge=0, description="Mix volume (1.0 = unchanged)")
    offset_in_milliseconds: int = Field(default=0, ge=0, description="Start offset in the mix")


class PodcastAdInput(WireModel):
    """Per-component inputs for a podcastAd job."""

    music: MusicInput = Field(default_factory=MusicInput)
    voice_over: VoiceOverInput = Field(default_factory=VoiceOverInput)


# --- Request Models ---


class CreateJobRequest(WireModel):
    """Request payload for creating a generation job."""

    owner_id: str = Field(..., min_length=1, description="Requesting user identifier")
    type: Literal["podcastAd"] = Field(default="podcastAd", description="Job type")
    input: PodcastAdInput = Field(default_factory=PodcastAdInput)


class CallbackOutput(BaseModel):
    """Output section of a provider callback."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str | None = Field(default=None, description="Resolved media URL")
    job_id: str | None = Field(default=None, alias="jobId", description="Echoed job id")


class ProviderCallback(BaseModel):
    """Completion notification posted by a generation provider.

    Providers attach their own bookkeeping fields; unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Provider run identifier")
    status: Literal["completed", "failed"] = Field(default="completed")
    output: CallbackOutput | None = Field(default=None)
    error: str | None = Field(default=None, description="Provider error message")

    @model_validator(mode="after")
    def _require_url_on_success(self) -> "ProviderCallback":
        if self.is_failure:
            return self
        if self.output is None or not (self.output.url or "").strip():
            raise ValueError("completed callback must carry output.url")
        return self

    @property
    def is_failure(self) -> bool:
        """True if the provider reported a generation failure."""
        return self.status == "failed" or bool(self.error)

    @property
    def url(self) -> str | None:
        return self.output.url if self.output is not None else None


# --- Response Models ---


class CreateJobResponse(WireModel):
    """Response for successful job creation."""

    status: str = Field(default="success", description="Operation status")
    job_id: str = Field(..., description="Identifier of the created job")


class ErrorResponse(WireModel):
    """Response for failed operations."""

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error taxonomy code")
    error_message: str = Field(..., description="Human-readable error description")


class ComponentResultResponse(WireModel):
    """One component entry of a job snapshot."""

    status: str
    url: str | None = None
    provider_request_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    received_at: datetime


class JobResponse(WireModel):
    """Job snapshot for API serialization."""

    job_id: str
    owner_id: str
    type: str
    status: str
    components: dict[str, ComponentResultResponse]
    input: dict[str, Any]
    output: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None


class CallbackAck(WireModel):
    """Acknowledgement returned to providers."""

    status: str = Field(default="acknowledged")
    outcome: str = Field(..., description="What reconciliation did with the callback")


class CancelJobResponse(WireModel):
    """Response for a successful cancellation."""

    job_id: str
    status: str


__all__ = [
    "MusicPrompt",
    "MusicInput",
    "VoiceOverPrompt",
    "VoiceOverInput",
    "PodcastAdInput",
    "CreateJobRequest",
    "CallbackOutput",
    "ProviderCallback",
    "CreateJobResponse",
    "ErrorResponse",
    "ComponentResultResponse",
    "JobResponse",
    "CallbackAck",
    "CancelJobResponse",
]
