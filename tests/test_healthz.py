from datetime import UTC, datetime, timedelta

from httpx import AsyncClient

from spoils.v1.infra.jobs.models import Job, JobStatus


async def test_health_check_success(async_client: AsyncClient):
    """Test health check endpoint returns correct format."""
    response = await async_client.get("/v1/healthz")

    assert response.status_code == 200

    data = response.json()
    assert data["ok"] is True

    health_data = data["data"]
    assert health_data["ok"] is True
    assert health_data["version"] == "1.0.0"
    assert health_data["environment"] == "test"
    assert health_data["database"]["connected"] is True
    assert health_data["worker"] == {
        "active_workers": 0,
        "last_heartbeat_age_seconds": None,
        "stuck_jobs_count": 0,
        "queue_depth": 0,
        "failed_jobs": 0,
    }


async def test_health_check_response_structure(async_client: AsyncClient):
    """Test health check response envelope structure."""
    response = await async_client.get("/v1/healthz")

    data = response.json()

    # Check response envelope structure
    for key in ["ok", "data", "message", "request_id", "timestamp"]:
        assert key in data

    # Check that request ID is present in headers
    assert "X-Request-ID" in response.headers


async def test_health_check_reports_leases(async_client: AsyncClient, db_session):
    now = datetime.now(UTC)
    db_session.add_all(
        [
            Job(
                task_type="send_notification",
                payload={},
                max_retries=5,
                status=JobStatus.LEASED.value,
                locked_by="worker-a",
                heartbeat_at=now,
                not_before=now,
            ),
            Job(
                task_type="send_notification",
                payload={},
                max_retries=5,
                status=JobStatus.LEASED.value,
                locked_by="worker-b",
                heartbeat_at=now - timedelta(hours=1),
                not_before=now,
            ),
            Job(
                task_type="send_notification",
                payload={},
                max_retries=5,
                status=JobStatus.FAILED.value,
                not_before=now,
            ),
        ]
    )
    await db_session.commit()

    response = await async_client.get("/v1/healthz")

    worker = response.json()["data"]["worker"]
    assert worker["active_workers"] == 1
    assert worker["stuck_jobs_count"] == 1
    assert worker["queue_depth"] == 2
    assert worker["failed_jobs"] == 1
    assert worker["last_heartbeat_age_seconds"] < 60
