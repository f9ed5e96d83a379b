"""Reset-date parsing and monthly billing-period arithmetic for Copilot quotas.

A monthly period is one calendar month ending at the reset instant. Its start
is the same day-of-month one month earlier, clamped to the last day of that
month (a reset on Mar 31 starts the period on Feb 28/29). The time of day of
the reset instant is carried over to the period start.
"""

import calendar
from datetime import datetime, timedelta, timezone

_MS = timedelta(milliseconds=1)


def parse_reset_date(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` reset date into UTC midnight.

    Days are only range-checked (1-31), not checked against the month, so
    ``2025-02-31`` is accepted and rolls forward to ``2025-03-03``.
    """
    parts = value.split("-")
    if len(parts) != 3:
        raise ValueError(f"Invalid reset date format: {value}")
    if not all(part.isascii() and part.isdigit() for part in parts):
        raise ValueError(f"Invalid reset date components: {value}")

    year, month, day = (int(part) for part in parts)
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        raise ValueError(f"Invalid reset date components: {value}")
    if year < 1:
        raise ValueError(f"Invalid reset date components: {value}")

    return datetime(year, month, 1, tzinfo=timezone.utc) + timedelta(days=day - 1)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def period_start(reset_date: datetime) -> datetime:
    reset = _as_utc(reset_date)
    year, month = (reset.year, reset.month - 1) if reset.month > 1 else (reset.year - 1, 12)
    if year < datetime.min.year:
        return datetime.min.replace(tzinfo=timezone.utc)
    last_day = calendar.monthrange(year, month)[1]
    return reset.replace(year=year, month=month, day=min(reset.day, last_day))


def calculate_period_duration(reset_date: datetime) -> int:
    """Length in milliseconds of the monthly period ending at ``reset_date``."""
    reset = _as_utc(reset_date)
    elapsed = (reset - period_start(reset)) // _MS
    return max(elapsed, 0)
