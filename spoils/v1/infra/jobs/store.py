"""
Job record store: enqueue with deduplication, leasing, and outcome transitions.

This is the only module that reads or writes the jobs table. Every state
change after enqueue is a single conditional UPDATE, so concurrent workers
never need a read-then-write pair to stay consistent.
"""

import functools
import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from spoils.config.settings import Settings
from spoils.infra.database import utcnow
from spoils.v1.core.exceptions import (
    StoreUnavailableError,
    UnknownJobTypeError,
    ValidationError,
)
from spoils.v1.core.registries import JobDefinition, JobPolicy, JobRegistry
from spoils.v1.infra.jobs.models import (
    ACTIVE_STATUSES,
    ELIGIBLE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobStatus,
)
from spoils.v1.infra.jobs.scheduling import (
    initial_not_before,
    rearm_not_before,
    retry_not_before,
)
from spoils.v1.infra.jobs.schemas import EnqueueResult, JobStatsResponse

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def translate_store_errors(func):
    """Surface connectivity loss as StoreUnavailableError; the store never retries."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.warning(
                "Job store unavailable",
                extra={"operation": func.__name__, "error": str(e)},
            )
            raise StoreUnavailableError(
                details={"operation": func.__name__}
            ) from e

    return wrapper


class JobStore:
    """Durable job queue backed by the jobs table."""

    def __init__(self, settings: Settings, registry: JobRegistry):
        self.settings = settings
        self.registry = registry

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    @translate_store_errors
    async def enqueue(
        self,
        session: AsyncSession,
        task_type: str,
        payload: dict[str, Any] | BaseModel | None = None,
        *,
        run_at: datetime | None = None,
        request_id: str | None = None,
        now: datetime | None = None,
    ) -> EnqueueResult:
        """
        Enqueue a job, collapsing onto an active job with the same uniqueness key.

        Args:
            session: Database session
            task_type: Registered task type
            payload: Raw payload or an instance of the type's payload model
            run_at: Earliest run time (defaults to now, or next cron slot)
            request_id: Request ID for tracing
            now: Clock override

        Returns:
            EnqueueResult with the job id; deduplicated=True when an active
            job already held the key
        """
        definition = self.registry.get(task_type)
        parsed = self._parse_payload(definition, payload)
        now = now or utcnow()

        uniqueness_key = self._derive_key(definition, parsed)
        if uniqueness_key:
            existing = await self.find_by_uniqueness_key(session, uniqueness_key)
            if existing:
                return self._deduplicated(existing, uniqueness_key)

        created_at = utcnow()
        job = Job(
            id=uuid4(),
            task_type=task_type,
            payload=parsed.model_dump(mode="json"),
            status=JobStatus.PENDING.value,
            attempts=0,
            max_retries=definition.policy.max_retries,
            not_before=initial_not_before(definition.policy, now, run_at),
            uniqueness_key=uniqueness_key,
            cron_expression=definition.policy.cron,
            request_id=request_id,
            created_at=created_at,
            updated_at=created_at,
        )

        try:
            session.add(job)
            await session.commit()
        except IntegrityError:
            await session.rollback()
            # Another producer registered the same key between our read and insert
            if uniqueness_key:
                existing = await self.find_by_uniqueness_key(session, uniqueness_key)
                if existing:
                    return self._deduplicated(existing, uniqueness_key)
            raise

        logger.info(
            "Job enqueued",
            extra={
                "job_id": str(job.id),
                "task_type": task_type,
                "not_before": job.not_before.isoformat(),
                "uniqueness_key": uniqueness_key,
            },
        )

        return EnqueueResult(
            job_id=job.id, status=JobStatus.PENDING, deduplicated=False
        )

    def _deduplicated(self, existing: Job, uniqueness_key: str) -> EnqueueResult:
        logger.info(
            "Job deduplicated",
            extra={
                "job_id": str(existing.id),
                "task_type": existing.task_type,
                "uniqueness_key": uniqueness_key,
            },
        )
        return EnqueueResult(
            job_id=existing.id,
            status=JobStatus(existing.status),
            deduplicated=True,
        )

    def _parse_payload(
        self, definition: JobDefinition, payload: dict[str, Any] | BaseModel | None
    ) -> BaseModel:
        if isinstance(payload, definition.payload_model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        try:
            return definition.parse_payload(payload or {})
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid payload for task type: {definition.task_type}",
                {"errors": json.loads(e.json(include_url=False))},
            ) from e

    def _derive_key(self, definition: JobDefinition, parsed: BaseModel) -> str | None:
        if not definition.policy.unique:
            return None
        key_data = json.dumps(
            {
                "task_type": definition.task_type,
                "payload": definition.uniqueness_payload(parsed),
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(key_data.encode()).hexdigest()[:32]

    def uniqueness_key_for(
        self, task_type: str, payload: dict[str, Any] | BaseModel | None = None
    ) -> str | None:
        """Uniqueness key a payload would get, or None for non-unique types."""
        definition = self.registry.get(task_type)
        return self._derive_key(definition, self._parse_payload(definition, payload))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @translate_store_errors
    async def get(self, session: AsyncSession, job_id: UUID) -> Job | None:
        """Get job by ID, refreshed from the database."""
        result = await session.execute(
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def find_by_uniqueness_key(
        self, session: AsyncSession, uniqueness_key: str
    ) -> Job | None:
        """Find the active job holding a uniqueness key."""
        result = await session.execute(
            select(Job)
            .where(
                Job.uniqueness_key == uniqueness_key,
                Job.status.in_(ACTIVE_STATUSES),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def list_jobs(
        self,
        session: AsyncSession,
        *,
        statuses: list[JobStatus] | None = None,
        task_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs, newest first, with total count for pagination."""
        base_query = select(Job)
        if statuses:
            base_query = base_query.where(Job.status.in_([s.value for s in statuses]))
        if task_type:
            base_query = base_query.where(Job.task_type == task_type)

        total_result = await session.execute(
            select(func.count()).select_from(base_query.subquery())
        )
        total = total_result.scalar() or 0

        jobs_result = await session.execute(
            base_query.order_by(Job.created_at.desc()).offset(offset).limit(limit)
        )
        return list(jobs_result.scalars().all()), total

    @translate_store_errors
    async def get_stats(
        self, session: AsyncSession, now: datetime | None = None
    ) -> JobStatsResponse:
        """Get job statistics."""
        now = now or utcnow()

        status_result = await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        by_status = {status: count for status, count in status_result.all()}

        type_result = await session.execute(
            select(Job.task_type, func.count(Job.id)).group_by(Job.task_type)
        )
        by_type = {task_type: count for task_type, count in type_result.all()}

        failed_recent_result = await session.execute(
            select(func.count(Job.id)).where(
                Job.status == JobStatus.FAILED.value,
                Job.updated_at >= now - timedelta(hours=1),
            )
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=sum(by_status.get(status, 0) for status in ACTIVE_STATUSES),
            failed_last_hour=failed_recent_result.scalar() or 0,
        )

    @translate_store_errors
    async def unknown_task_types(self, session: AsyncSession) -> list[str]:
        """Task types of active jobs that have no registered definition."""
        result = await session.execute(
            select(Job.task_type)
            .where(Job.status.in_(ACTIVE_STATUSES))
            .distinct()
        )
        return sorted(
            task_type for task_type in result.scalars() if task_type not in self.registry
        )

    # ------------------------------------------------------------------
    # Leasing
    # ------------------------------------------------------------------

    @translate_store_errors
    async def lease_next(
        self,
        session: AsyncSession,
        worker_id: str,
        capacity: int,
        *,
        now: datetime | None = None,
    ) -> list[Job]:
        """
        Claim up to ``capacity`` eligible jobs for a worker.

        The claim is one UPDATE whose candidate subquery uses
        FOR UPDATE SKIP LOCKED on PostgreSQL; the outer status predicate is
        re-checked by the UPDATE itself, so no two callers get the same row.
        Earliest not_before wins, created_at breaks ties.
        """
        if capacity <= 0:
            return []

        now = now or utcnow()
        candidate = aliased(Job)
        eligible = (
            select(candidate.id)
            .where(
                candidate.status.in_(ELIGIBLE_STATUSES),
                candidate.not_before <= now,
            )
            .order_by(candidate.not_before, candidate.created_at)
            .limit(capacity)
            .with_for_update(skip_locked=True)
        )

        claim = (
            update(Job)
            .where(Job.id.in_(eligible), Job.status.in_(ELIGIBLE_STATUSES))
            .values(
                status=JobStatus.LEASED.value,
                locked_at=now,
                locked_by=worker_id,
                heartbeat_at=now,
                updated_at=now,
            )
            .returning(Job.id)
            .execution_options(synchronize_session=False)
        )

        result = await session.execute(claim)
        job_ids = list(result.scalars().all())
        await session.commit()

        if not job_ids:
            return []

        jobs_result = await session.execute(
            select(Job)
            .where(Job.id.in_(job_ids))
            .order_by(Job.not_before, Job.created_at)
            .execution_options(populate_existing=True)
        )
        jobs = list(jobs_result.scalars().all())

        logger.info(
            "Leased jobs",
            extra={
                "worker_id": worker_id,
                "job_count": len(jobs),
                "job_ids": [str(job.id) for job in jobs],
            },
        )

        return jobs

    @translate_store_errors
    async def heartbeat(
        self,
        session: AsyncSession,
        worker_id: str,
        job_ids: list[UUID] | set[UUID],
        now: datetime | None = None,
    ) -> int:
        """Refresh the lease heartbeat of jobs held by a worker."""
        if not job_ids:
            return 0
        result = await session.execute(
            update(Job)
            .where(
                Job.id.in_(list(job_ids)),
                Job.locked_by == worker_id,
                Job.status == JobStatus.LEASED.value,
            )
            .values(heartbeat_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    @translate_store_errors
    async def complete(
        self,
        session: AsyncSession,
        job_id: UUID,
        *,
        result: dict[str, Any] | None = None,
        worker_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Record a successful run.

        Non-recurring jobs become completed. Recurring jobs are re-armed:
        back to pending with a fresh retry budget at their next cron slot.
        Returns False when the job is no longer leased (by this worker).
        """
        now = now or utcnow()
        job = await self._leased_job(session, job_id, worker_id, "complete")
        if job is None:
            return False

        values: dict[str, Any] = {
            **self._release_values(now),
            "result": result,
            "error_code": None,
        }
        if job.cron_expression:
            values.update(
                status=JobStatus.PENDING.value,
                attempts=0,
                not_before=rearm_not_before(job.cron_expression, now, job.not_before),
            )
        else:
            values["status"] = JobStatus.COMPLETED.value

        updated = await self._compare_and_set(session, job, values)
        if updated:
            logger.info(
                "Job completed",
                extra={
                    "job_id": str(job.id),
                    "task_type": job.task_type,
                    "rearmed": bool(job.cron_expression),
                    "next_run_at": (
                        values["not_before"].isoformat()
                        if job.cron_expression
                        else None
                    ),
                },
            )
        return updated

    @translate_store_errors
    async def fail(
        self,
        session: AsyncSession,
        job_id: UUID,
        error: str,
        *,
        worker_id: str | None = None,
        error_code: str = "EXECUTOR_FAILURE",
        now: datetime | None = None,
    ) -> JobStatus | None:
        """
        Record a failed attempt.

        Increments attempts. Within budget the job moves to retrying with
        not_before pushed out by the policy's backoff; past max_retries it
        becomes permanently failed (recurring jobs are re-armed instead).

        Returns the new status, or None when the job is no longer leased.
        """
        now = now or utcnow()
        job = await self._leased_job(session, job_id, worker_id, "fail")
        if job is None:
            return None

        attempts = job.attempts + 1
        values: dict[str, Any] = {
            **self._release_values(now),
            "attempts": attempts,
            "last_error": error[:MAX_ERROR_LENGTH],
        }

        if attempts <= job.max_retries:
            policy = self._policy_for(job)
            new_status = JobStatus.RETRYING
            values.update(
                status=new_status.value,
                not_before=retry_not_before(policy, attempts, now, job.not_before),
                error_code=error_code,
            )
        elif job.cron_expression:
            new_status = JobStatus.PENDING
            values.update(
                status=new_status.value,
                attempts=0,
                not_before=rearm_not_before(job.cron_expression, now, job.not_before),
                error_code="RECURRING_RUN_FAILED",
            )
        else:
            new_status = JobStatus.FAILED
            values.update(status=new_status.value, error_code="RETRIES_EXHAUSTED")

        if not await self._compare_and_set(session, job, values):
            return None

        log_extra = {
            "job_id": str(job.id),
            "task_type": job.task_type,
            "attempts": attempts,
            "max_retries": job.max_retries,
            "error": error,
        }
        if new_status == JobStatus.RETRYING:
            logger.info(
                "Job scheduled for retry",
                extra={**log_extra, "next_run_at": values["not_before"].isoformat()},
            )
        elif new_status == JobStatus.PENDING:
            logger.error("Recurring job run failed, re-armed", extra=log_extra)
        else:
            logger.error("Job permanently failed", extra=log_extra)

        return new_status

    @translate_store_errors
    async def retry_job(
        self, session: AsyncSession, job_id: UUID, now: datetime | None = None
    ) -> bool:
        """Give a permanently failed job a fresh retry budget."""
        now = now or utcnow()
        try:
            result = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.FAILED.value)
                .values(
                    status=JobStatus.PENDING.value,
                    attempts=0,
                    not_before=now,
                    error_code=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        except IntegrityError:
            # A newer active job already holds the uniqueness key
            await session.rollback()
            logger.info(
                "Job retry refused, uniqueness key is active",
                extra={"job_id": str(job_id)},
            )
            return False

        success = result.rowcount > 0
        if success:
            logger.info("Job retried", extra={"job_id": str(job_id)})
        return success

    @translate_store_errors
    async def reclaim_expired_leases(
        self,
        session: AsyncSession,
        visibility_timeout_s: int | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Requeue leased jobs whose worker stopped heartbeating.

        An expired lease counts as a failed attempt so a job that keeps
        crashing its worker still exhausts its retry budget.
        """
        now = now or utcnow()
        timeout_seconds = (
            visibility_timeout_s
            if visibility_timeout_s is not None
            else self.settings.job_visibility_timeout_s
        )
        cutoff = now - timedelta(seconds=timeout_seconds)

        stuck_result = await session.execute(
            select(Job.id).where(
                Job.status == JobStatus.LEASED.value,
                Job.heartbeat_at < cutoff,
            )
        )
        stuck_job_ids = list(stuck_result.scalars().all())

        reclaimed = 0
        for job_id in stuck_job_ids:
            status = await self.fail(
                session,
                job_id,
                f"Lease expired after {timeout_seconds}s without heartbeat",
                error_code="LEASE_EXPIRED",
                now=now,
            )
            if status is not None:
                reclaimed += 1

        if reclaimed:
            logger.warning(
                "Reclaimed expired leases",
                extra={"reclaimed_count": reclaimed, "timeout_seconds": timeout_seconds},
            )
        return reclaimed

    @translate_store_errors
    async def cleanup_old_jobs(
        self,
        session: AsyncSession,
        retention_days: int | None = None,
        now: datetime | None = None,
    ) -> int:
        """Delete completed and failed jobs older than the retention window."""
        retention_days = (
            retention_days
            if retention_days is not None
            else self.settings.job_cleanup_after_days
        )
        cutoff = (now or utcnow()) - timedelta(days=retention_days)

        result = await session.execute(
            delete(Job)
            .where(Job.status.in_(TERMINAL_STATUSES), Job.updated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted_count = result.rowcount
        await session.commit()

        if deleted_count > 0:
            logger.info(
                "Cleaned up old jobs",
                extra={"deleted_count": deleted_count, "retention_days": retention_days},
            )

        return deleted_count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _leased_job(
        self,
        session: AsyncSession,
        job_id: UUID,
        worker_id: str | None,
        operation: str,
    ) -> Job | None:
        job = await self.get(session, job_id)
        if (
            job is None
            or job.status != JobStatus.LEASED.value
            or (worker_id is not None and job.locked_by != worker_id)
        ):
            logger.warning(
                "Ignoring outcome for job that is not leased",
                extra={
                    "job_id": str(job_id),
                    "operation": operation,
                    "status": job.status if job else None,
                    "worker_id": worker_id,
                },
            )
            return None
        return job

    async def _compare_and_set(
        self, session: AsyncSession, job: Job, values: dict[str, Any]
    ) -> bool:
        """Apply values only if the job is still in the leased state we read."""
        result = await session.execute(
            update(Job)
            .where(
                Job.id == job.id,
                Job.status == JobStatus.LEASED.value,
                Job.attempts == job.attempts,
                Job.locked_by == job.locked_by,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return result.rowcount == 1

    def _policy_for(self, job: Job) -> JobPolicy:
        try:
            return self.registry.get(job.task_type).policy
        except UnknownJobTypeError:
            logger.warning(
                "No policy registered for job, retrying without backoff",
                extra={"job_id": str(job.id), "task_type": job.task_type},
            )
            return JobPolicy(max_retries=job.max_retries)

    @staticmethod
    def _release_values(now: datetime) -> dict[str, Any]:
        return {
            "locked_at": None,
            "locked_by": None,
            "heartbeat_at": None,
            "updated_at": now,
        }
