"""
Job queue models for note enrichment.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, TIMESTAMP, CheckConstraint, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from pkp.infra.database import Base


class JobStatus(str, Enum):
    """Job status enumeration."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobType(str, Enum):
    """Closed set of enrichment job types."""

    CLASSIFY_NOTE = "classify_note"
    EMBED_NOTE = "embed_note"
    CAPTION_INK = "caption_ink"
    GENERATE_PACK = "generate_pack"


class Job(Base):
    """
    Deferred enrichment work.

    The row is the only coordination point between runners:
    - status + lease fields (locked_at, locked_by) give mutual exclusion
    - run_after schedules both first runs and backoff retries
    - attempts only ever grows, incremented at claim time
    Rows are retained after completion for observability.
    """

    __tablename__ = "jobs"

    # Core fields
    id: Mapped[UUID] = mapped_column(PG_UUID, primary_key=True, default=uuid4)
    owner: Mapped[str] = mapped_column(
        Text, nullable=False, comment="User the job acts on behalf of"
    )
    type: Mapped[str] = mapped_column(Text, nullable=False, comment="Job type identifier")
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        server_default="{}",
        comment="Job-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.QUEUED.value,
        comment="Job status: queued|running|succeeded|failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of claims made"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempt ceiling"
    )
    run_after: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default="now()",
        comment="Earliest time to run job",
    )

    # Lease
    locked_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="When the lease was taken"
    )
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Runner holding the lease"
    )

    # Execution timing and outcome
    started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tokens_estimate: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Rough model cost of the last run"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default="now()",
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'running', 'succeeded', 'failed')",
            name="jobs_status_check",
        ),
        CheckConstraint(
            "type IN ('classify_note', 'embed_note', 'caption_ink', 'generate_pack')",
            name="jobs_type_check",
        ),
        Index("ix_jobs_status_run_after", "status", "run_after"),
        Index("ix_jobs_owner_created_at", "owner", "created_at"),
    )

    def lease_is_stale(self, now: datetime, stale_after_s: int) -> bool:
        """Check if a running job's lease is old enough to be reclaimed."""
        if self.status != JobStatus.RUNNING.value or self.locked_at is None:
            return False
        return (now - self.locked_at).total_seconds() > stale_after_s

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, type={self.type}, status={self.status}, attempts={self.attempts})>"
