"""
Job engine Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from spoils.v1.infra.jobs.models import JobStatus


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_retries: int
    not_before: datetime

    # Worker coordination
    locked_at: datetime | None = None
    locked_by: str | None = None
    heartbeat_at: datetime | None = None

    # Results
    result: dict[str, Any] | None = None
    error_code: str | None = None
    last_error: str | None = None

    # Metadata
    uniqueness_key: str | None = None
    cron_expression: str | None = None
    request_id: str | None = None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + leased + retrying
    failed_last_hour: int


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    task_type: str = Field(..., description="Task type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload")
    run_at: datetime | None = Field(default=None, description="Scheduled run time")


class EnqueueResult(BaseModel):
    """
    Outcome of an enqueue.

    ``deduplicated`` is the duplicate-suppressed outcome: an active job with
    the same uniqueness key already existed and its id is returned instead of
    creating a new row.
    """

    job_id: UUID
    status: JobStatus
    deduplicated: bool = Field(
        default=False, description="Whether an active job already existed"
    )
