"""
Job store: persistence and the atomic claim protocol.

All cross-runner coordination happens here, through row locks on the jobs
table. Claims use SELECT ... FOR UPDATE SKIP LOCKED so concurrent runners
never observe the same row.
"""

import hashlib
import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pkp.config.logging import get_logger
from pkp.config.settings import Settings
from pkp.jobs.backoff import plan_failure
from pkp.jobs.models import Job, JobStatus, JobType
from pkp.jobs.schemas import (
    JobEnqueueResponse,
    JobOutcome,
    JobStatsResponse,
    parse_payload,
)

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000


class JobStore:
    """Job queue operations bound to one database session."""

    def __init__(self, session: AsyncSession, settings: Settings):
        self.session = session
        self.settings = settings

    async def enqueue(
        self,
        owner: str,
        job_type: JobType | str,
        payload: dict[str, Any] | BaseModel,
        run_after: datetime | None = None,
        max_attempts: int | None = None,
        commit: bool = True,
    ) -> UUID:
        """
        Create a queued job.

        Args:
            owner: User the job acts on behalf of
            job_type: One of the JobType values
            payload: Raw dict or payload model; validated for the job type
            run_after: Earliest execution time (defaults to now)
            max_attempts: Attempt ceiling (defaults to settings)
            commit: Commit immediately; pass False to enqueue inside a
                larger transaction owned by the caller

        Returns:
            The new job id
        """
        typed_payload = parse_payload(job_type, payload)
        job_type = JobType(job_type)

        job = Job(
            owner=owner,
            type=job_type.value,
            payload=typed_payload.model_dump(mode="json"),
            status=JobStatus.QUEUED.value,
            attempts=0,
            max_attempts=max_attempts or self.settings.job_max_attempts,
            run_after=run_after or datetime.now(UTC),
        )
        self.session.add(job)
        await self.session.flush()

        if commit:
            await self.session.commit()

        logger.info(
            "Job enqueued",
            job_id=str(job.id),
            type=job.type,
            owner=owner,
            run_after=job.run_after.isoformat(),
        )
        return job.id

    async def enqueue_unique(
        self,
        owner: str,
        job_type: JobType | str,
        payload: dict[str, Any] | BaseModel,
        run_after: datetime | None = None,
        commit: bool = True,
    ) -> JobEnqueueResponse:
        """
        Enqueue unless an equivalent job is already waiting in the queue.

        Only queued rows count as equivalent: a running job may already have
        read stale note content, so it does not cover new work.
        """
        payload_data = parse_payload(job_type, payload).model_dump(mode="json")
        job_type = JobType(job_type)

        # Serialize concurrent enqueuers of the same job until commit
        await self.session.execute(
            select(func.pg_advisory_xact_lock(self._dedupe_lock_key(owner, job_type, payload_data)))
        )

        existing = await self._find_queued_duplicate(owner, job_type, payload_data)
        if existing is not None:
            logger.info(
                "Job deduplicated",
                job_id=str(existing.id),
                type=job_type.value,
                owner=owner,
            )
            if commit:
                await self.session.commit()
            return JobEnqueueResponse(
                job_id=existing.id, status=existing.status, deduplicated=True
            )

        job_id = await self.enqueue(
            owner, job_type, payload_data, run_after=run_after, commit=commit
        )
        return JobEnqueueResponse(job_id=job_id, status=JobStatus.QUEUED.value)

    async def _find_queued_duplicate(
        self, owner: str, job_type: JobType, payload_data: dict[str, Any]
    ) -> Job | None:
        conditions = [
            Job.owner == owner,
            Job.type == job_type.value,
            Job.status == JobStatus.QUEUED.value,
        ]
        for key, value in payload_data.items():
            conditions.append(Job.payload[key].as_string() == str(value))

        result = await self.session.execute(
            select(Job).where(and_(*conditions)).order_by(Job.run_after).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _dedupe_lock_key(owner: str, job_type: JobType, payload_data: dict[str, Any]) -> int:
        """Stable signed 64-bit advisory lock key for a job identity."""
        key_data = f"{owner}:{job_type.value}:{json.dumps(payload_data, sort_keys=True)}"
        digest = hashlib.sha256(key_data.encode()).digest()
        return int.from_bytes(digest[:8], "big", signed=True)

    async def claim_next(self, runner_id: str, now: datetime | None = None) -> Job | None:
        """
        Atomically lease the next eligible job.

        Eligible rows are queued jobs whose run_after has passed, or running
        jobs whose lease is older than the stale threshold (abandoned by a
        crashed runner). Rows locked by a concurrent claimer are skipped.
        """
        now = now or datetime.now(UTC)
        stale_cutoff = now - timedelta(seconds=self.settings.job_stale_lease_s)

        claim_query = (
            select(Job)
            .where(
                or_(
                    and_(
                        Job.status == JobStatus.QUEUED.value,
                        Job.run_after <= now,
                    ),
                    and_(
                        Job.status == JobStatus.RUNNING.value,
                        Job.locked_at < stale_cutoff,
                    ),
                )
            )
            .order_by(Job.run_after)
            .limit(1)
            .with_for_update(skip_locked=True)
        )

        result = await self.session.execute(claim_query)
        job = result.scalar_one_or_none()

        if job is None:
            await self.session.rollback()
            return None

        previous_holder = (
            job.locked_by if job.lease_is_stale(now, self.settings.job_stale_lease_s) else None
        )

        job.status = JobStatus.RUNNING.value
        job.attempts = job.attempts + 1
        job.locked_at = now
        job.locked_by = runner_id
        job.started_at = now
        await self.session.commit()

        if previous_holder is not None:
            logger.warning(
                "Stale lease reclaimed",
                job_id=str(job.id),
                type=job.type,
                previous_runner=previous_holder,
                attempts=job.attempts,
            )

        logger.info(
            "Job claimed",
            job_id=str(job.id),
            type=job.type,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
        )
        return job

    async def finalize(
        self,
        job_id: UUID,
        runner_id: str,
        outcome: JobOutcome,
        now: datetime | None = None,
    ) -> JobStatus | None:
        """
        Record the outcome of a leased job.

        Success marks the job succeeded. Failure schedules a retry per the
        backoff policy, or fails the job terminally once attempts reach
        max_attempts. Returns None without writing when the lease is no
        longer held by runner_id.
        """
        now = now or datetime.now(UTC)

        result = await self.session.execute(
            select(Job).where(Job.id == job_id).with_for_update()
        )
        job = result.scalar_one_or_none()

        if (
            job is None
            or job.status != JobStatus.RUNNING.value
            or job.locked_by != runner_id
        ):
            await self.session.rollback()
            logger.warning(
                "Lease lost before finalize",
                job_id=str(job_id),
                current_holder=job.locked_by if job else None,
                current_status=job.status if job else None,
            )
            return None

        job.locked_at = None
        job.locked_by = None

        if outcome.success:
            job.status = JobStatus.SUCCEEDED.value
            job.finished_at = now
            job.duration_ms = self._duration_ms(job, outcome, now)
            job.tokens_estimate = outcome.tokens_estimate
            new_status = JobStatus.SUCCEEDED
        else:
            job.last_error = (outcome.error or "Job failed")[:MAX_ERROR_LENGTH]
            plan = plan_failure(job.attempts, job.max_attempts, now)
            if plan.terminal:
                job.status = JobStatus.FAILED.value
                job.finished_at = now
                job.duration_ms = self._duration_ms(job, outcome, now)
                new_status = JobStatus.FAILED
            else:
                job.status = JobStatus.QUEUED.value
                job.run_after = plan.run_after
                new_status = JobStatus.QUEUED

        await self.session.commit()

        if new_status is JobStatus.SUCCEEDED:
            logger.info("Job succeeded", job_id=str(job_id), duration_ms=job.duration_ms)
        elif new_status is JobStatus.QUEUED:
            logger.info(
                "Job scheduled for retry",
                job_id=str(job_id),
                attempts=job.attempts,
                run_after=job.run_after.isoformat(),
                error=job.last_error,
            )
        else:
            logger.error(
                "Job failed terminally",
                job_id=str(job_id),
                attempts=job.attempts,
                error=job.last_error,
            )
        return new_status

    @staticmethod
    def _duration_ms(job: Job, outcome: JobOutcome, now: datetime) -> int | None:
        if outcome.duration_ms is not None:
            return outcome.duration_ms
        if job.started_at is None:
            return None
        return int((now - job.started_at).total_seconds() * 1000)

    async def get_job(self, job_id: UUID, owner: str | None = None) -> Job | None:
        """Get job by ID with optional owner scoping."""
        query = select(Job).where(Job.id == job_id)
        if owner:
            query = query.where(Job.owner == owner)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_stats(self, now: datetime | None = None) -> JobStatsResponse:
        """Get queue statistics."""
        now = now or datetime.now(UTC)

        total_result = await self.session.execute(select(func.count(Job.id)))
        total_jobs = total_result.scalar() or 0

        status_result = await self.session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        by_status = dict(status_result.all())

        type_result = await self.session.execute(
            select(Job.type, func.count(Job.id)).group_by(Job.type)
        )
        by_type = dict(type_result.all())

        queue_depth = by_status.get(JobStatus.QUEUED.value, 0) + by_status.get(
            JobStatus.RUNNING.value, 0
        )

        stale_cutoff = now - timedelta(seconds=self.settings.job_stale_lease_s)
        stale_result = await self.session.execute(
            select(func.count(Job.id)).where(
                and_(
                    Job.status == JobStatus.RUNNING.value,
                    Job.locked_at < stale_cutoff,
                )
            )
        )
        stale_leases = stale_result.scalar() or 0

        return JobStatsResponse(
            total_jobs=total_jobs,
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            stale_leases=stale_leases,
        )

    async def requeue_failed(self, job_id: UUID, owner: str | None = None) -> UUID | None:
        """
        Re-enqueue a terminally failed job as a fresh copy.

        The failed row is left untouched; terminal jobs are never claimed
        again.
        """
        job = await self.get_job(job_id, owner)
        if job is None or job.status != JobStatus.FAILED.value:
            return None

        new_id = await self.enqueue(job.owner, job.type, job.payload)
        logger.info("Failed job requeued", job_id=str(job_id), new_job_id=str(new_id))
        return new_id
