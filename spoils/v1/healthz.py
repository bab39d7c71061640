from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.config.logging import get_logger
from spoils.config.settings import Settings, SettingsDep
from spoils.infra.database import get_session
from spoils.v1.core.exceptions import create_success_response
from spoils.v1.infra.jobs.models import ACTIVE_STATUSES, Job, JobStatus

router = APIRouter()
logger = get_logger(__name__)


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class WorkerHealth(BaseModel):
    """Worker health status."""

    active_workers: int
    last_heartbeat_age_seconds: int | None = None
    stuck_jobs_count: int = 0
    queue_depth: int = 0
    failed_jobs: int = 0


class HealthResponse(BaseModel):
    """Health response with worker and database status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    worker: WorkerHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check endpoint with database and queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)
    overall_ok = db_health.connected

    worker_health = None
    if db_health.connected:
        try:
            worker_health = await _check_worker_health(session, settings)
        except Exception as e:
            # Queue inspection failure doesn't fail overall health
            logger.warning("Worker health check failed", error=str(e))
            worker_health = WorkerHealth(active_workers=0)

    health_data = HealthResponse(
        ok=overall_ok,
        version=settings.version,
        environment=settings.environment,
        timestamp=timestamp,
        database=db_health,
        worker=worker_health,
    )

    return create_success_response(data=health_data.model_dump())


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_worker_health(
    session: AsyncSession, settings: Settings
) -> WorkerHealth:
    """Check job worker liveness and queue status."""
    now = datetime.now(UTC)

    # Workers holding leases with a recent heartbeat
    heartbeat_cutoff = now - timedelta(seconds=settings.job_heartbeat_interval_s * 10)
    active_workers_result = await session.execute(
        select(func.count(func.distinct(Job.locked_by))).where(
            Job.status == JobStatus.LEASED.value, Job.heartbeat_at > heartbeat_cutoff
        )
    )
    active_workers = active_workers_result.scalar() or 0

    last_heartbeat_result = await session.execute(
        select(func.max(Job.heartbeat_at)).where(
            Job.status == JobStatus.LEASED.value, Job.heartbeat_at.is_not(None)
        )
    )
    last_heartbeat = last_heartbeat_result.scalar()

    last_heartbeat_age_seconds = None
    if last_heartbeat:
        last_heartbeat_age_seconds = int((now - last_heartbeat).total_seconds())

    # Leased jobs whose heartbeat is past the visibility timeout
    stuck_cutoff = now - timedelta(seconds=settings.job_visibility_timeout_s)
    stuck_jobs_result = await session.execute(
        select(func.count(Job.id)).where(
            Job.status == JobStatus.LEASED.value, Job.heartbeat_at < stuck_cutoff
        )
    )

    queue_depth_result = await session.execute(
        select(func.count(Job.id)).where(Job.status.in_(ACTIVE_STATUSES))
    )

    failed_result = await session.execute(
        select(func.count(Job.id)).where(Job.status == JobStatus.FAILED.value)
    )

    return WorkerHealth(
        active_workers=active_workers,
        last_heartbeat_age_seconds=last_heartbeat_age_seconds,
        stuck_jobs_count=stuck_jobs_result.scalar() or 0,
        queue_depth=queue_depth_result.scalar() or 0,
        failed_jobs=failed_result.scalar() or 0,
    )
