from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

SECONDS_PER_DAY = 24 * 60 * 60
"""Number of seconds in a day, used for day-count rounding."""


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Return ``value`` as an aware UTC datetime.

    Naive datetimes (as returned by SQLite) are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: date) -> datetime:
    """Midnight UTC of a calendar date."""
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """
    Parse an ISO-8601 string, date or datetime into an aware UTC datetime.

    Accepts plain dates (``2025-01-31``), full timestamps with or without an
    offset, and a trailing ``Z``.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return start_of_day(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid date: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc
    return ensure_utc(parsed)


def parse_date(value: Any) -> date:
    """Parse a value into a calendar date (UTC for timestamps)."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return parse_datetime(value).date()


def format_iso_millis(value: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and ``Z`` suffix."""
    moment = ensure_utc(value)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: datetime, months: int, day: int | None = None) -> datetime:
    """
    Shift ``value`` by whole months, keeping the time of day.

    Args:
        value: Starting datetime.
        months: Number of months to add (may be negative).
        day: Target day of month; defaults to the day of ``value``. Clamped to
            the length of the resulting month.
    """
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    target_day = min(day or value.day, days_in_month(year, month))
    return value.replace(year=year, month=month, day=target_day)


def ceil_days(delta: timedelta) -> int:
    """Whole days in ``delta``, rounding any partial day up."""
    seconds = delta.total_seconds()
    days = int(seconds // SECONDS_PER_DAY)
    if seconds % SECONDS_PER_DAY:
        days += 1
    return days
