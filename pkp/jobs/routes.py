"""
Job queue endpoints for the external scheduler and operators.

Every endpoint requires the shared cron secret in X-Cron-Secret.
"""

import hmac
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pkp.config.logging import get_logger
from pkp.config.settings import Settings, SettingsDep
from pkp.core.exceptions import NotFoundError, UnauthorizedError, create_success_response
from pkp.infra.database import get_session
from pkp.jobs.runner import run_jobs
from pkp.jobs.schemas import JobResponse
from pkp.jobs.store import JobStore

logger = get_logger(__name__)


def require_cron_secret(
    x_cron_secret: str | None = Header(default=None, alias="X-Cron-Secret"),
    settings: Settings = SettingsDep,
) -> None:
    """Reject the call unless the configured secret was presented."""
    if not settings.cron_secret:
        logger.warning("CRON_SECRET not configured")
        raise UnauthorizedError("Invalid cron secret")
    if x_cron_secret is None or not hmac.compare_digest(
        x_cron_secret.encode(), settings.cron_secret.encode()
    ):
        raise UnauthorizedError("Invalid cron secret")


router = APIRouter(
    prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_cron_secret)]
)


@router.post("/run", response_model=dict)
async def run_job_processor(
    batch_limit: int | None = Query(default=None, ge=1, le=100, description="Jobs to process"),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Run one batch of the job processor (called by cron)."""
    summary = await run_jobs(batch_limit or settings.job_batch_limit, settings)
    return create_success_response(data=summary.model_dump())


@router.get("/stats", response_model=dict)
async def get_job_stats(
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get queue statistics."""
    stats = await JobStore(session, settings).get_stats()
    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Get a single job record."""
    job = await JobStore(session, settings).get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found", {"job_id": str(job_id)})
    return create_success_response(data=JobResponse.model_validate(job).model_dump(mode="json"))


@router.post("/{job_id}/requeue", response_model=dict)
async def requeue_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Enqueue a fresh copy of a failed job."""
    new_id = await JobStore(session, settings).requeue_failed(job_id)
    if new_id is None:
        raise NotFoundError("No failed job with this id", {"job_id": str(job_id)})
    return create_success_response(data={"job_id": str(new_id), "requeued_from": str(job_id)})
