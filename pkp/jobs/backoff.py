"""
Retry backoff policy for failed jobs.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

BACKOFF_CAP_MINUTES = 60


def retry_delay(attempts: int) -> timedelta:
    """Delay before the next attempt: 2^attempts minutes, capped at one hour."""
    if attempts < 0:
        raise ValueError(f"attempts must be non-negative, got: {attempts}")
    # Cap before exponentiating so large counts stay cheap
    if attempts >= BACKOFF_CAP_MINUTES.bit_length():
        return timedelta(minutes=BACKOFF_CAP_MINUTES)
    return timedelta(minutes=min(2**attempts, BACKOFF_CAP_MINUTES))


@dataclass(frozen=True)
class FailurePlan:
    """Where a failed job goes next."""

    terminal: bool
    run_after: datetime | None = None


def plan_failure(attempts: int, max_attempts: int, now: datetime) -> FailurePlan:
    """Decide between a scheduled retry and terminal failure."""
    if attempts >= max_attempts:
        return FailurePlan(terminal=True)
    return FailurePlan(terminal=False, run_after=now + retry_delay(attempts))
