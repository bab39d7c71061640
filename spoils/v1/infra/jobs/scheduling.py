"""
Eligibility timing for jobs: retry backoff and cron recurrence.
"""

from datetime import UTC, datetime

from croniter import croniter

from spoils.v1.core.registries import JobPolicy


def next_cron_time(expression: str, after: datetime) -> datetime:
    """Next fire time of a cron expression strictly after ``after`` (UTC)."""
    base = after.astimezone(UTC)
    next_run = croniter(expression, base).get_next(datetime)
    if next_run.tzinfo is None:
        next_run = next_run.replace(tzinfo=UTC)
    return next_run


def initial_not_before(
    policy: JobPolicy, now: datetime, run_at: datetime | None = None
) -> datetime:
    """When a freshly enqueued job becomes eligible."""
    if run_at is not None:
        if run_at.tzinfo is None:
            run_at = run_at.replace(tzinfo=UTC)
        return max(run_at.astimezone(UTC), now)
    if policy.cron is not None:
        return next_cron_time(policy.cron, now)
    return now


def retry_not_before(
    policy: JobPolicy, attempts: int, now: datetime, previous: datetime
) -> datetime:
    """
    Eligibility after the ``attempts``-th failure.

    The backoff index is 0 at the first retry. Never earlier than the
    previous not_before.
    """
    delay = policy.backoff(attempts - 1)
    return max(previous, now + delay)


def rearm_not_before(expression: str, now: datetime, previous: datetime) -> datetime:
    """Next cron slot for a recurring job, strictly after both now and its last slot."""
    return next_cron_time(expression, max(now, previous))
