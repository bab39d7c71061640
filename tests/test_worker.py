"""
Worker pool tests: dispatch, failure isolation, halting and the background loop.
"""

import asyncio
from datetime import UTC, datetime

import pytest
from pydantic import BaseModel

from spoils.v1.core.exceptions import ConfigurationError
from spoils.v1.core.registries import JobDefinition, JobPolicy, JobRegistry
from spoils.v1.infra.jobs.models import Job, JobStatus
from spoils.v1.infra.jobs.payloads import CLEANUP, SEND_NOTIFICATION
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.infra.jobs.worker import JobWorker

from fakes import all_jobs


class EchoPayload(BaseModel):
    value: str


class RecordingHandler:
    def __init__(self):
        self.seen = []

    async def handle(self, session, queue, payload):
        self.seen.append(payload.value)
        return {"echo": payload.value}


class ExplodingHandler:
    async def handle(self, session, queue, payload):
        raise RuntimeError(f"cannot process {payload.value}")


class MisconfiguredHandler:
    async def handle(self, session, queue, payload):
        raise ConfigurationError("Handler is missing its provider")


@pytest.fixture
def recording() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def custom_registry(recording: RecordingHandler) -> JobRegistry:
    registry = JobRegistry()
    registry.add(JobDefinition("echo", EchoPayload, recording, JobPolicy(max_retries=2)))
    registry.add(JobDefinition("explode", EchoPayload, ExplodingHandler(), JobPolicy(max_retries=0)))
    registry.add(JobDefinition("misconfigured", EchoPayload, MisconfiguredHandler()))
    registry.freeze()
    return registry


@pytest.fixture
def custom_worker(settings, database, custom_registry):
    store = JobStore(settings, custom_registry)
    return JobWorker(settings, database, custom_registry, store, worker_id="custom")


async def test_run_until_idle_processes_all_jobs(worker, queue, database):
    for user_id in range(7):
        await queue.enqueue(
            SEND_NOTIFICATION,
            {"user_id": user_id, "notification_type": "digest", "message": "hello"},
        )

    processed = await worker.run_until_idle()

    assert processed == 7
    jobs = await all_jobs(database, SEND_NOTIFICATION)
    assert {job.status for job in jobs} == {JobStatus.COMPLETED.value}
    assert jobs[0].result["status"] == "sent"


async def test_failure_is_isolated_to_its_job(custom_worker, recording, database):
    ok = await custom_worker.queue.enqueue("echo", {"value": "a"})
    bad = await custom_worker.queue.enqueue("explode", {"value": "b"})

    assert await custom_worker.run_once() == 2

    async with database.SessionLocal() as session:
        ok_job = await custom_worker.store.get(session, ok.job_id)
        bad_job = await custom_worker.store.get(session, bad.job_id)

    assert ok_job.status == JobStatus.COMPLETED.value
    assert ok_job.result == {"echo": "a"}
    assert bad_job.status == JobStatus.FAILED.value
    assert bad_job.attempts == 1
    assert "RuntimeError: cannot process b" in bad_job.last_error
    assert recording.seen == ["a"]
    assert custom_worker.active_jobs == set()


async def test_configuration_error_halts_worker(custom_worker, database):
    result = await custom_worker.queue.enqueue("misconfigured", {"value": "x"})

    with pytest.raises(ConfigurationError):
        await custom_worker.run_once()

    async with database.SessionLocal() as session:
        job = await custom_worker.store.get(session, result.job_id)

    # The lease is left for reclaim rather than counted as an attempt
    assert job.status == JobStatus.LEASED.value
    assert job.attempts == 0
    assert job.locked_by == "custom"


async def test_start_refuses_unknown_task_types(worker, db_session):
    db_session.add(
        Job(
            task_type="retired_type",
            payload={},
            max_retries=0,
            not_before=datetime.now(UTC),
        )
    )
    await db_session.commit()

    with pytest.raises(ConfigurationError) as exc_info:
        await worker.start()

    assert exc_info.value.details["task_types"] == ["retired_type"]
    assert worker.running is False


async def test_recurring_jobs_are_armed_once(worker, database):
    first = await worker.schedule_recurring_jobs()
    second = await worker.schedule_recurring_jobs()

    assert [result.deduplicated for result in first] == [False]
    assert [result.deduplicated for result in second] == [True]
    assert first[0].job_id == second[0].job_id

    jobs = await all_jobs(database, CLEANUP)
    assert len(jobs) == 1
    assert jobs[0].cron_expression == "0 2 * * *"


async def test_background_loop_processes_and_stops(worker, queue, database):
    task = asyncio.create_task(worker.start())

    result = await queue.enqueue(
        SEND_NOTIFICATION,
        {"user_id": 42, "notification_type": "alert", "message": "spoiled"},
    )

    job = None
    for _ in range(200):
        async with database.SessionLocal() as session:
            job = await worker.store.get(session, result.job_id)
        if job.status == JobStatus.COMPLETED.value:
            break
        await asyncio.sleep(0.02)

    await worker.stop()
    await asyncio.wait_for(task, timeout=5)

    assert job.status == JobStatus.COMPLETED.value
    assert job.result == {
        "status": "sent",
        "user_id": 42,
        "notification_type": "alert",
    }
    assert worker.running is False
