"""
Job payload and result schemas.

Each job type has its own payload model; `parse_payload` is the single
place a raw JSON payload becomes a typed one.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from pkp.core.exceptions import ValidationError as PayloadValidationError
from pkp.jobs.models import JobType


class NotePayload(BaseModel):
    """Payload for jobs that enrich a single note."""

    model_config = ConfigDict(extra="forbid")

    note_id: UUID


class PackMode(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"


class GeneratePackPayload(BaseModel):
    """Payload for knowledge pack generation over a date range."""

    model_config = ConfigDict(extra="forbid")

    range_start: date
    range_end: date
    mode: PackMode = PackMode.SKIP

    @model_validator(mode="after")
    def _check_range(self) -> "GeneratePackPayload":
        if self.range_end < self.range_start:
            raise ValueError("range_end must not be before range_start")
        return self


JobPayload = NotePayload | GeneratePackPayload

PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.CLASSIFY_NOTE: NotePayload,
    JobType.EMBED_NOTE: NotePayload,
    JobType.CAPTION_INK: NotePayload,
    JobType.GENERATE_PACK: GeneratePackPayload,
}


def parse_payload(job_type: JobType | str, payload: dict[str, Any] | BaseModel) -> JobPayload:
    """Validate a raw payload against the model for its job type."""
    try:
        job_type = JobType(job_type)
    except ValueError:
        raise PayloadValidationError(
            f"Unknown job type: {job_type}", details={"type": str(job_type)}
        ) from None

    model = PAYLOAD_MODELS[job_type]
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise PayloadValidationError(
            f"Invalid payload for {job_type.value}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class ExecutionResult(BaseModel):
    """What an executor reports back on success."""

    tokens_estimate: int = 0
    detail: str | None = None


class JobOutcome(BaseModel):
    """Outcome handed to JobStore.finalize."""

    success: bool
    tokens_estimate: int | None = None
    error: str | None = None
    duration_ms: int | None = None


class RunSummary(BaseModel):
    """Aggregate counters returned by one runner invocation."""

    processed: int = 0
    failed: int = 0


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner: str
    type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    run_after: datetime

    locked_at: datetime | None = None
    locked_by: str | None = None

    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    tokens_estimate: int | None = None
    last_error: str | None = None

    created_at: datetime
    updated_at: datetime


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int = Field(description="queued + running")
    stale_leases: int


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: UUID
    status: str
    deduplicated: bool = Field(
        default=False, description="Whether an existing queued job was reused"
    )
