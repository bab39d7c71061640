"""
Database-backed job worker with heartbeats and lease recovery.
"""

import asyncio
import os
import socket
from typing import Any
from uuid import UUID

from spoils.config.logging import add_job_context, get_logger
from spoils.config.settings import Settings
from spoils.infra.database import Database
from spoils.v1.core.exceptions import ConfigurationError, TransientStoreError
from spoils.v1.core.registries import JobRegistry
from spoils.v1.infra.jobs.models import Job
from spoils.v1.infra.jobs.queue import JobQueue
from spoils.v1.infra.jobs.schemas import EnqueueResult
from spoils.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


class JobWorker:
    """
    Job worker process.

    Features:
    - Conditional-UPDATE leasing (SKIP LOCKED on PostgreSQL), safe across processes
    - Up to ``job_concurrency`` jobs in flight, each isolated in its own task
    - Heartbeats, with expired leases reclaimed as failed attempts
    - Recurring (cron) job types armed at startup
    - Graceful shutdown that drains in-flight jobs
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        registry: JobRegistry,
        store: JobStore | None = None,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.database = database
        self.registry = registry
        self.store = store or JobStore(settings, registry)
        self.queue = JobQueue(database, self.store)
        self.worker_id = worker_id or f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self.active_jobs: set[UUID] = set()
        self._tasks: set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self._fatal_error: ConfigurationError | None = None

    @property
    def concurrency(self) -> int:
        return self.settings.job_concurrency

    async def prepare(self) -> list[EnqueueResult]:
        """Validate stored task types and arm recurring jobs."""
        await self.ensure_known_task_types()
        return await self.schedule_recurring_jobs()

    async def ensure_known_task_types(self) -> None:
        """Refuse to start when active jobs reference unregistered task types."""
        async with self.database.SessionLocal() as session:
            unknown = await self.store.unknown_task_types(session)
        if unknown:
            raise ConfigurationError(
                "Job store contains active jobs of unregistered task types",
                {"task_types": unknown, "registered": self.registry.list()},
            )

    async def schedule_recurring_jobs(self) -> list[EnqueueResult]:
        """Enqueue every cron task type; uniqueness makes this idempotent."""
        results = []
        for definition in self.registry.recurring():
            result = await self.queue.enqueue(
                definition.task_type, definition.payload_model()
            )
            results.append(result)
            logger.info(
                "Recurring job armed",
                task_type=definition.task_type,
                cron=definition.policy.cron,
                job_id=str(result.job_id),
                deduplicated=result.deduplicated,
            )
        return results

    async def start(self) -> None:
        """Start the job worker main loop."""
        if self.running:
            raise RuntimeError("Worker is already running")

        await self.prepare()

        self.running = True
        self._stop_event.clear()
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            concurrency=self.concurrency,
            poll_interval_ms=self.settings.job_poll_interval_ms,
            task_types=self.registry.list(),
        )

        try:
            await asyncio.gather(
                self._worker_loop(),
                self._heartbeat_loop(),
                self._reclaim_loop(),
            )
        finally:
            self.running = False

        if self._fatal_error is not None:
            raise self._fatal_error

    async def stop(self) -> None:
        """Stop the worker gracefully, waiting for in-flight jobs."""
        logger.info("Stopping job worker", worker_id=self.worker_id)
        self.running = False
        self._stop_event.set()

        if self._tasks:
            await asyncio.wait(
                set(self._tasks), timeout=self.settings.job_shutdown_timeout_s
            )

        if self.active_jobs:
            logger.warning(
                "Worker stopped with active jobs",
                worker_id=self.worker_id,
                active_jobs=len(self.active_jobs),
            )

    async def run_once(self) -> int:
        """
        Lease one batch and process it to completion.

        Returns the number of jobs processed.
        """
        jobs = await self._claim_jobs()
        if jobs:
            await asyncio.gather(*(self._process_job(job) for job in jobs))
        if self._fatal_error is not None:
            raise self._fatal_error
        return len(jobs)

    async def run_until_idle(self, max_batches: int = 1000) -> int:
        """Process batches until no eligible job remains."""
        processed = 0
        for _ in range(max_batches):
            count = await self.run_once()
            if count == 0:
                break
            processed += count
        return processed

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when the worker is asked to stop."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _worker_loop(self) -> None:
        """Main worker loop that leases and dispatches jobs."""
        while self.running:
            try:
                for job in await self._claim_jobs():
                    task = asyncio.create_task(self._process_job(job))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except TransientStoreError:
                logger.warning("Job store unavailable, backing off", worker_id=self.worker_id)
                await self._sleep(5)
                continue
            except Exception:
                logger.exception("Error in worker loop", worker_id=self.worker_id)
                await self._sleep(5)
                continue

            await self._sleep(self.settings.job_poll_interval_ms / 1000)

    async def _claim_jobs(self) -> list[Job]:
        """Lease as many jobs as there are free slots."""
        available_slots = max(0, self.concurrency - len(self.active_jobs))
        if available_slots == 0:
            return []

        async with self.database.SessionLocal() as session:
            jobs = await self.store.lease_next(session, self.worker_id, available_slots)

        self.active_jobs.update(job.id for job in jobs)
        return jobs

    async def _process_job(self, job: Job) -> None:
        """Process a single job; any failure is recorded against that job only."""
        add_job_context(job_id=str(job.id), task_type=job.task_type)
        job_logger = logger.bind(
            job_id=str(job.id), task_type=job.task_type, attempt=job.attempts + 1
        )

        try:
            definition = self.registry.get(job.task_type)
            payload = definition.parse_payload(job.payload)

            job_logger.info("Processing job started")
            async with self.database.SessionLocal() as session:
                result = await definition.handler.handle(session, self.queue, payload)

        except ConfigurationError as e:
            # Wiring problem, not a job failure: leave the lease to expire
            job_logger.critical("Configuration error, stopping worker", error=e.message)
            self._halt(e)

        except Exception as e:
            job_logger.exception("Job processing failed", error=str(e))
            await self._record_failure(job, e)

        else:
            await self._record_success(job, result)
            job_logger.info("Processing job completed successfully")

        finally:
            self.active_jobs.discard(job.id)

    async def _record_success(self, job: Job, result: dict[str, Any] | None) -> None:
        try:
            async with self.database.SessionLocal() as session:
                await self.store.complete(
                    session, job.id, result=result, worker_id=self.worker_id
                )
        except TransientStoreError:
            logger.exception(
                "Could not record job completion", job_id=str(job.id)
            )

    async def _record_failure(self, job: Job, error: Exception) -> None:
        message = f"{error.__class__.__name__}: {error}"
        try:
            async with self.database.SessionLocal() as session:
                await self.store.fail(
                    session, job.id, message, worker_id=self.worker_id
                )
        except TransientStoreError:
            logger.exception("Could not record job failure", job_id=str(job.id))

    def _halt(self, error: ConfigurationError) -> None:
        self._fatal_error = error
        self.running = False
        self._stop_event.set()

    async def _heartbeat_loop(self) -> None:
        """Update heartbeats for active jobs."""
        while self.running:
            try:
                if self.active_jobs:
                    async with self.database.SessionLocal() as session:
                        await self.store.heartbeat(
                            session, self.worker_id, set(self.active_jobs)
                        )
                await self._sleep(self.settings.job_heartbeat_interval_s)

            except Exception:
                logger.exception(
                    "Error updating heartbeats", worker_id=self.worker_id
                )
                await self._sleep(self.settings.job_heartbeat_interval_s * 2)

    async def _reclaim_loop(self) -> None:
        """Requeue jobs whose worker stopped heartbeating."""
        while self.running:
            try:
                async with self.database.SessionLocal() as session:
                    await self.store.reclaim_expired_leases(
                        session, self.settings.job_visibility_timeout_s
                    )
                await self._sleep(self.settings.job_reclaim_interval_s)

            except Exception:
                logger.exception("Error reclaiming expired leases")
                await self._sleep(self.settings.job_reclaim_interval_s)
