"""
Job management API endpoints.

Provides endpoints for job enqueueing, monitoring, and retry.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.infra.database import get_session
from spoils.v1.core.exceptions import NotFoundError, create_success_response
from spoils.v1.infra.jobs.models import JobStatus
from spoils.v1.infra.jobs.registry_init import get_job_store
from spoils.v1.infra.jobs.schemas import (
    JobEnqueueRequest,
    JobListResponse,
    JobResponse,
)
from spoils.v1.infra.jobs.store import JobStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=dict)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Enqueue a new background job; an active duplicate is returned as-is."""
    request_id = getattr(request.state, "request_id", None)

    result = await store.enqueue(
        session,
        job_request.task_type,
        job_request.payload,
        run_at=job_request.run_at,
        request_id=request_id,
    )

    logger.info(
        "Job enqueued via API",
        extra={
            "job_id": str(result.job_id),
            "task_type": job_request.task_type,
            "deduplicated": result.deduplicated,
        },
    )

    return create_success_response(
        data=result.model_dump(mode="json"), request_id=request_id
    )


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    task_type: str | None = Query(default=None, description="Filter by task type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""
    jobs, total = await store.list_jobs(
        session, statuses=status, task_type=task_type, limit=limit, offset=offset
    )

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats", response_model=dict)
async def get_job_stats(
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Get job statistics."""
    stats = await store.get_stats(session)
    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await store.get(session, job_id)
    if not job:
        raise NotFoundError("Job not found", {"job_id": str(job_id)})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Retry a permanently failed job."""
    success = await store.retry_job(session, job_id)

    if not success:
        raise NotFoundError(
            "Job not found or not eligible for retry", {"job_id": str(job_id)}
        )

    logger.info("Job retried via API", extra={"job_id": str(job_id)})

    return create_success_response(data={"success": True, "job_id": str(job_id)})
