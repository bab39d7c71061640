from datetime import UTC, datetime, timedelta

from spoils.v1.core.registries import JobPolicy, exponential_backoff
from spoils.v1.infra.jobs.scheduling import (
    initial_not_before,
    next_cron_time,
    rearm_not_before,
    retry_not_before,
)

NOW = datetime(2026, 10, 17, 9, 30, tzinfo=UTC)


def test_next_cron_time_is_strictly_after():
    assert next_cron_time("0 2 * * *", NOW) == datetime(2026, 10, 18, 2, 0, tzinfo=UTC)

    at_fire_time = datetime(2026, 10, 18, 2, 0, tzinfo=UTC)
    assert next_cron_time("0 2 * * *", at_fire_time) == datetime(
        2026, 10, 19, 2, 0, tzinfo=UTC
    )


def test_initial_not_before_defaults_to_now():
    assert initial_not_before(JobPolicy(), NOW) == NOW


def test_initial_not_before_honours_future_run_at():
    run_at = NOW + timedelta(hours=1)
    assert initial_not_before(JobPolicy(), NOW, run_at) == run_at


def test_initial_not_before_clamps_past_run_at():
    assert initial_not_before(JobPolicy(), NOW, NOW - timedelta(days=1)) == NOW


def test_initial_not_before_treats_naive_run_at_as_utc():
    naive = datetime(2026, 10, 17, 12, 0)
    assert initial_not_before(JobPolicy(), NOW, naive) == datetime(
        2026, 10, 17, 12, 0, tzinfo=UTC
    )


def test_initial_not_before_for_cron_is_next_fire():
    policy = JobPolicy(cron="0 2 * * *")
    assert initial_not_before(policy, NOW) == datetime(2026, 10, 18, 2, 0, tzinfo=UTC)


def test_retry_backoff_deltas():
    policy = JobPolicy(max_retries=3, backoff=exponential_backoff(60))

    delays = [
        retry_not_before(policy, attempts, NOW, NOW) - NOW for attempts in (1, 2, 3)
    ]

    assert delays == [
        timedelta(seconds=60),
        timedelta(seconds=120),
        timedelta(seconds=240),
    ]


def test_retry_never_moves_not_before_backwards():
    later = NOW + timedelta(hours=2)
    assert retry_not_before(JobPolicy(), 1, NOW, later) == later


def test_rearm_skips_past_previous_slot():
    previous = datetime(2026, 10, 18, 2, 0, tzinfo=UTC)
    # Completed before its slot (clock skew): still moves to the following day
    assert rearm_not_before("0 2 * * *", NOW, previous) == datetime(
        2026, 10, 19, 2, 0, tzinfo=UTC
    )
