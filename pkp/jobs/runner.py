"""
Runner loop: claim, execute, finalize.

Each invocation is independent and holds no state between calls, so any
number of runners may execute concurrently in separate processes. Mutual
exclusion comes entirely from JobStore.claim_next.
"""

import asyncio
import os
import socket
import time
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pkp.config.logging import bind_run_context, get_logger
from pkp.config.settings import Settings, settings
from pkp.core.exceptions import JobTimeoutError
from pkp.core.idempotency import IdempotencyGuard
from pkp.core.registries import JobRegistry, job_registry
from pkp.infra.database import get_database
from pkp.jobs.executors import JobContext
from pkp.jobs.models import Job, JobStatus
from pkp.jobs.registry_init import register_job_handlers
from pkp.jobs.schemas import ExecutionResult, JobOutcome, RunSummary, parse_payload
from pkp.jobs.store import JobStore
from pkp.notes.repository import NoteRepository

logger = get_logger(__name__)


def default_runner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


class JobRunner:
    """Processes up to a batch of jobs per invocation."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        registry: JobRegistry = job_registry,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.registry = registry

    async def run(self, batch_limit: int | None = None, runner_id: str | None = None) -> RunSummary:
        """
        Claim and process jobs until the batch is used up or the queue is empty.

        Returns:
            processed: jobs claimed and finalized in this run
            failed: jobs that ended terminally failed in this run
        """
        runner_id = runner_id or default_runner_id()
        batch_limit = batch_limit or self.settings.job_batch_limit
        bind_run_context(runner_id)
        summary = RunSummary()

        while summary.processed < batch_limit:
            try:
                async with self.session_factory() as session:
                    job = await self.make_store(session).claim_next(runner_id)
            except Exception:
                logger.exception("Error claiming next job", runner_id=runner_id)
                break

            if job is None:
                break

            status = await self._process(job, runner_id)
            summary.processed += 1
            if status is JobStatus.FAILED:
                summary.failed += 1

        logger.info(
            "Runner finished",
            runner_id=runner_id,
            processed=summary.processed,
            failed=summary.failed,
        )
        return summary

    async def _process(self, job: Job, runner_id: str) -> JobStatus | None:
        job_logger = logger.bind(
            job_id=str(job.id), job_type=job.type, attempt=job.attempts
        )
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self._execute(job), timeout=self.settings.job_timeout_s
            )
            outcome = JobOutcome(success=True, tokens_estimate=result.tokens_estimate)
            job_logger.info("Job executed", detail=result.detail)
        except TimeoutError:
            error = JobTimeoutError(self.settings.job_timeout_s)
            outcome = JobOutcome(success=False, error=error.message)
            job_logger.warning("Job timed out", timeout_s=self.settings.job_timeout_s)
        except Exception as e:
            outcome = JobOutcome(success=False, error=str(e) or e.__class__.__name__)
            job_logger.warning(
                "Job execution failed", error=outcome.error, exception=e.__class__.__name__
            )

        outcome.duration_ms = int((time.monotonic() - started) * 1000)

        try:
            async with self.session_factory() as session:
                return await self.make_store(session).finalize(job.id, runner_id, outcome)
        except Exception:
            # Lease stays in place; the job is reclaimed once it goes stale
            job_logger.exception("Error finalizing job")
            return None

    async def _execute(self, job: Job) -> ExecutionResult:
        executor = self.registry.get(job.type)
        payload = parse_payload(job.type, job.payload)

        async with self.session_factory() as session:
            return await executor.execute(self.make_context(session, job), payload)

    def make_store(self, session: AsyncSession) -> JobStore:
        return JobStore(session, self.settings)

    def make_context(self, session: AsyncSession, job: Job) -> JobContext:
        return JobContext(
            job_id=job.id,
            owner=job.owner,
            notes=NoteRepository(session),
            queue=JobStore(session, self.settings),
            guard=IdempotencyGuard(session),
        )


def build_runner(config: Settings = settings) -> JobRunner:
    """Runner wired to the configured database and executors."""
    if not job_registry.list():
        register_job_handlers(config)
    return JobRunner(config, get_database(config).SessionLocal)


async def run_jobs(batch_limit: int | None = None, config: Settings = settings) -> RunSummary:
    """Entry point for external triggers (cron endpoint, CLI)."""
    return await build_runner(config).run(batch_limit)
