import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from pkp.config.settings import Settings, SettingsDep
from pkp.core.exceptions import create_success_response
from pkp.infra.database import get_session
from pkp.jobs.store import JobStore

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue health status."""

    queue_depth: int = 0
    stale_leases: int = 0


class HealthResponse(BaseModel):
    """Health response with database and queue status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    queue: QueueHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database and queue status."""

    db_health = await _check_database_health(session)

    queue_health = None
    if db_health.connected:
        stats = await JobStore(session, settings).get_stats()
        queue_health = QueueHealth(
            queue_depth=stats.queue_depth, stale_leases=stats.stale_leases
        )

    health = HealthResponse(
        ok=db_health.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        database=db_health,
        queue=queue_health,
    )
    return create_success_response(data=health.model_dump())


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Ping the database and time the round trip."""
    started = time.perf_counter()
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))
    return DatabaseHealth(
        connected=True, response_time_ms=round((time.perf_counter() - started) * 1000, 2)
    )
