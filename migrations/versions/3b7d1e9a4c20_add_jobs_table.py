"""add jobs table for the background job engine

Revision ID: 3b7d1e9a4c20
Revises:
Create Date: 2026-10-17 09:12:40.118203

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7d1e9a4c20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_PREDICATE = (
    "uniqueness_key IS NOT NULL AND status IN ('pending', 'leased', 'retrying')"
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("task_type", sa.Text, nullable=False, comment="Task type discriminator"),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            comment="Task-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|leased|completed|failed|retrying",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of failed attempts",
        ),
        sa.Column(
            "max_retries",
            sa.SmallInteger,
            nullable=False,
            comment="Retry budget resolved from policy",
        ),
        sa.Column(
            "not_before",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job may be leased",
        ),
        sa.Column(
            "uniqueness_key",
            sa.Text,
            nullable=True,
            comment="Derived from task type and payload when unique",
        ),
        sa.Column(
            "cron_expression",
            sa.Text,
            nullable=True,
            comment="Recurrence schedule for cron task types",
        ),
        # Worker coordination fields
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When job was leased by worker",
        ),
        sa.Column(
            "locked_by", sa.Text, nullable=True, comment="Worker ID that holds the lease"
        ),
        sa.Column(
            "heartbeat_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Last worker heartbeat",
        ),
        # Results
        sa.Column(
            "result", sa.JSON, nullable=True, comment="Result of the last successful run"
        ),
        sa.Column(
            "error_code", sa.Text, nullable=True, comment="Structured error identifier"
        ),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        sa.Column(
            "request_id",
            sa.Text,
            nullable=True,
            comment="Original request ID for tracing",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'leased', 'completed', 'failed', 'retrying')",
            name="jobs_status_check",
        ),
    )

    # Lease order: earliest not_before first, created_at breaks ties
    op.create_index(
        "ix_jobs_status_not_before", "jobs", ["status", "not_before", "created_at"]
    )
    op.create_index("ix_jobs_task_type_status", "jobs", ["task_type", "status"])

    # Terminal jobs release their key so the same work can be enqueued again
    op.create_index(
        "ix_jobs_uniqueness_key_active",
        "jobs",
        ["uniqueness_key"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_PREDICATE),
        sqlite_where=sa.text(ACTIVE_PREDICATE),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_uniqueness_key_active", table_name="jobs")
    op.drop_index("ix_jobs_task_type_status", table_name="jobs")
    op.drop_index("ix_jobs_status_not_before", table_name="jobs")
    op.drop_table("jobs")
