"""API Endpoint Wrappers - Typed API calls"""

from typing import Any

import httpx

from ..utils.config_manager import config
from .base import APIClient, SpoilsError

__all__ = ["SpoilsClient", "SpoilsError"]


class SpoilsClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8080")

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=api_config.get("headers", {}),
            transport=transport,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def enqueue_job(
        self,
        task_type: str,
        payload: dict[str, Any],
        run_at: str | None = None,
    ) -> dict[str, Any]:
        """Enqueue a job"""
        body: dict[str, Any] = {"task_type": task_type, "payload": payload}
        if run_at:
            body["run_at"] = run_at
        return self.api.post("/jobs", body)

    def list_jobs(
        self,
        status: str | None = None,
        task_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if task_type:
            params["task_type"] = task_type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get specific job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def get_job_stats(self) -> dict[str, Any]:
        """Get job statistics"""
        return self.api.get("/jobs/stats")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        """Retry a failed job"""
        return self.api.post(f"/jobs/{job_id}/retry")

    # Ingredient Endpoints
    def resolve_ingredient(self, name: str) -> dict[str, Any]:
        """Find or enqueue a single ingredient"""
        return self.api.post("/ingredients/resolve", {"name": name})

    def resolve_statement(self, text: str) -> dict[str, Any]:
        """Find or enqueue every ingredient in a statement"""
        return self.api.post("/ingredients/resolve", {"text": text})

    def get_ingredient(self, name: str) -> dict[str, Any]:
        """Get an ingredient by name"""
        return self.api.get(f"/ingredients/{name}")

    # Product Endpoints
    def fetch_product(self, barcode: str) -> dict[str, Any]:
        """Enqueue a product fetch"""
        return self.api.post(f"/products/{barcode}/fetch")
