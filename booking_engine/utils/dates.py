"""
Calendar-date and UTC datetime utilities.

Stays, blocks and rate overrides are keyed by ``datetime.date`` (a calendar day
with no time zone). Instants only appear at the I/O boundary, and a calendar day
is always anchored to midnight UTC when it has to become one.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_midnight(day: date) -> datetime:
    """Anchor a calendar day to 00:00 UTC."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def each_night(check_in: date, check_out: date) -> Iterator[date]:
    """
    Yield every night in the half-open range [check_in, check_out).

    The check-out day itself is not a night of the stay.
    """
    day = check_in
    while day < check_out:
        yield day
        day += timedelta(days=1)


def each_day(start: date, end: date) -> Iterator[date]:
    """Yield every day in the inclusive range [start, end]."""
    return each_night(start, end + timedelta(days=1))


def add_months(day: date, months: int) -> date:
    """
    Shift a date by whole months, clamping to the last day of the target month.

    Example:
        >>> add_months(date(2024, 1, 31), 1)
        datetime.date(2024, 2, 29)
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
