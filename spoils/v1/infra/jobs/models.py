"""
Job record model for the background job engine.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Index,
    Integer,
    SmallInteger,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from spoils.infra.database import Base, UTCDateTime, utcnow


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    LEASED = "leased"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


# Statuses that still hold a uniqueness key and may run again
ACTIVE_STATUSES = (
    JobStatus.PENDING.value,
    JobStatus.LEASED.value,
    JobStatus.RETRYING.value,
)
# Statuses a worker may lease
ELIGIBLE_STATUSES = (JobStatus.PENDING.value, JobStatus.RETRYING.value)
TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)

_ACTIVE_PREDICATE = "uniqueness_key IS NOT NULL AND status IN ('pending', 'leased', 'retrying')"


class Job(Base):
    """
    Job model for background processing.

    One row per job instance. Provides:
    - Per-type retry budget copied from the policy at creation
    - Uniqueness among active jobs via a partial unique index
    - Lease bookkeeping (locked_by, heartbeat_at) for crash recovery
    - Cron re-arming: recurring jobs return to pending instead of finishing
    """

    __tablename__ = "jobs"

    # Core fields
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    task_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Task type discriminator"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Task-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|leased|completed|failed|retrying",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of failed attempts"
    )
    max_retries: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, comment="Retry budget resolved from policy"
    )
    not_before: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        comment="Earliest time the job may be leased",
    )
    uniqueness_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Derived from task type and payload when unique"
    )
    cron_expression: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Recurrence schedule for cron task types"
    )

    # Worker coordination
    locked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="When job was leased by worker"
    )
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker ID that holds the lease"
    )
    heartbeat_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Last worker heartbeat"
    )

    # Results
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Result of the last successful run"
    )
    error_code: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Structured error identifier"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )
    request_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Original request ID for tracing"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'leased', 'completed', 'failed', 'retrying')",
            name="jobs_status_check",
        ),
        Index("ix_jobs_status_not_before", "status", "not_before", "created_at"),
        Index("ix_jobs_task_type_status", "task_type", "status"),
        Index(
            "ix_jobs_uniqueness_key_active",
            "uniqueness_key",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
    )
