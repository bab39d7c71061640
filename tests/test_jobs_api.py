"""
Job API endpoint tests.
"""

from uuid import UUID, uuid4

from httpx import AsyncClient

from spoils.v1.infra.jobs.models import JobStatus


async def enqueue(client: AsyncClient, task_type: str, payload: dict):
    return await client.post("/v1/jobs", json={"task_type": task_type, "payload": payload})


class TestJobsAPI:
    async def test_enqueue_job(self, async_client: AsyncClient):
        response = await enqueue(async_client, "fetch_product", {"barcode": "737628064502"})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert body["data"]["status"] == "pending"
        assert body["data"]["deduplicated"] is False

    async def test_duplicate_enqueue_returns_same_job(self, async_client: AsyncClient):
        first = await enqueue(async_client, "fetch_product", {"barcode": "42"})
        second = await enqueue(async_client, "fetch_product", {"barcode": "42"})

        assert second.status_code == 200
        assert second.json()["data"]["job_id"] == first.json()["data"]["job_id"]
        assert second.json()["data"]["deduplicated"] is True

    async def test_unknown_task_type_is_client_error(self, async_client: AsyncClient):
        response = await enqueue(async_client, "mine_bitcoin", {})

        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert body["error"]["details"]["task_type"] == "mine_bitcoin"
        assert "fetch_product" in body["error"]["details"]["registered"]

    async def test_invalid_payload_is_rejected(self, async_client: AsyncClient):
        response = await enqueue(async_client, "send_notification", {"user_id": "nobody"})

        assert response.status_code == 422
        assert response.json()["error"]["details"]["errors"]

    async def test_get_job(self, async_client: AsyncClient):
        created = await enqueue(async_client, "create_ingredient", {"name": " Sea  Salt "})
        job_id = created.json()["data"]["job_id"]

        response = await async_client.get(f"/v1/jobs/{job_id}")

        assert response.status_code == 200
        job = response.json()["data"]
        assert job["id"] == job_id
        assert job["task_type"] == "create_ingredient"
        assert job["payload"] == {"name": "Sea Salt"}
        assert job["status"] == JobStatus.PENDING.value
        assert job["attempts"] == 0
        assert job["max_retries"] == 3
        assert job["request_id"] == created.headers["X-Request-ID"]

    async def test_get_missing_job(self, async_client: AsyncClient):
        response = await async_client.get(f"/v1/jobs/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Job not found"

    async def test_list_jobs_with_filters(self, async_client: AsyncClient):
        await enqueue(async_client, "fetch_product", {"barcode": "1"})
        await enqueue(async_client, "fetch_product", {"barcode": "2"})
        await enqueue(async_client, "create_ingredient", {"name": "Salt"})

        response = await async_client.get(
            "/v1/jobs", params={"task_type": "fetch_product", "status": "pending", "limit": 1}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 2
        assert data["limit"] == 1
        assert len(data["jobs"]) == 1
        assert data["jobs"][0]["task_type"] == "fetch_product"

        response = await async_client.get("/v1/jobs", params={"status": "failed"})
        assert response.json()["data"]["total"] == 0

    async def test_job_stats(self, async_client: AsyncClient):
        await enqueue(async_client, "fetch_product", {"barcode": "1"})
        await enqueue(async_client, "create_ingredient", {"name": "Salt"})

        response = await async_client.get("/v1/jobs/stats")

        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["total_jobs"] == 2
        assert stats["by_status"] == {"pending": 2}
        assert stats["by_type"] == {"fetch_product": 1, "create_ingredient": 1}
        assert stats["queue_depth"] == 2
        assert stats["failed_last_hour"] == 0

    async def test_retry_requires_failed_job(self, async_client: AsyncClient):
        created = await enqueue(async_client, "fetch_product", {"barcode": "1"})
        job_id = created.json()["data"]["job_id"]

        response = await async_client.post(f"/v1/jobs/{job_id}/retry")
        assert response.status_code == 404

        response = await async_client.post(f"/v1/jobs/{uuid4()}/retry")
        assert response.status_code == 404

    async def test_retry_failed_job(self, async_client: AsyncClient, db_session, store):
        created = await enqueue(async_client, "fetch_product", {"barcode": "1"})
        job_id = created.json()["data"]["job_id"]
        job = await store.get(db_session, UUID(job_id))
        job.status = JobStatus.FAILED.value
        job.attempts = 4
        await db_session.commit()

        response = await async_client.post(f"/v1/jobs/{job_id}/retry")

        assert response.status_code == 200
        assert response.json()["data"] == {"success": True, "job_id": job_id}

        job = (await async_client.get(f"/v1/jobs/{job_id}")).json()["data"]
        assert job["status"] == "pending"
        assert job["attempts"] == 0
