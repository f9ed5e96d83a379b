"""Usage pace: how fast a quota is being consumed relative to its window.

A rate of 1.0 means the quota runs out exactly at reset, above 1.0 means it
runs out early, below 1.0 means there is headroom.
"""

from datetime import datetime, timedelta, timezone
from typing import Literal

UsageRateCategory = Literal["green", "yellow", "red"]

MIN_ELAPSED_FRACTION = 0.05
MAX_MIN_ELAPSED_MS = 2 * 60 * 60 * 1000

YELLOW_THRESHOLD = 1.0
RED_THRESHOLD = 1.5


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calculate_usage_rate(
    utilization: float,
    resets_at: datetime | None,
    period_duration_ms: int,
    now: datetime | None = None,
) -> float | None:
    """Ratio of actual utilization to the utilization expected by ``now``.

    Returns None without a reset time, or while less than
    min(5% of the period, 2 hours) has elapsed. A non-positive period
    (unlimited window) yields 0.
    """
    if resets_at is None:
        return None
    if period_duration_ms <= 0:
        return 0.0

    if now is None:
        now = datetime.now(timezone.utc)
    resets_at = _as_utc(resets_at)
    now = _as_utc(now)
    start = resets_at - timedelta(milliseconds=period_duration_ms)
    elapsed_ms = (now - start) / timedelta(milliseconds=1)

    min_elapsed_ms = min(period_duration_ms * MIN_ELAPSED_FRACTION, MAX_MIN_ELAPSED_MS)
    if elapsed_ms < min_elapsed_ms:
        return None

    elapsed_percent = elapsed_ms / period_duration_ms * 100
    return utilization / elapsed_percent


def classify_usage_rate(rate: float) -> UsageRateCategory:
    if rate > RED_THRESHOLD:
        return "red"
    if rate > YELLOW_THRESHOLD:
        return "yellow"
    return "green"
