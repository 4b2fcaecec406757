"""
Unit tests for the pure booking rules: interval overlap, date validation,
block labels, day splitting and refund eligibility.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from booking_engine.errors import BadRequestError
from booking_engine.models.calendars import CalendarPlatform
from booking_engine.models.reservations import ReservationStatus
from booking_engine.services.availability import (
    block_interval,
    block_label,
    overlaps,
    validate_stay_dates,
)
from booking_engine.services.block_editor import split_range
from booking_engine.services.ledger import is_refund_eligible
from booking_engine.utils.dates import add_months, each_day, each_night, utc_midnight

TODAY = date(2025, 3, 1)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ((date(2025, 3, 1), date(2025, 3, 3)), (date(2025, 3, 3), date(2025, 3, 5)), False),
        ((date(2025, 3, 3), date(2025, 3, 5)), (date(2025, 3, 1), date(2025, 3, 3)), False),
        ((date(2025, 3, 1), date(2025, 3, 4)), (date(2025, 3, 3), date(2025, 3, 5)), True),
        ((date(2025, 3, 1), date(2025, 3, 10)), (date(2025, 3, 3), date(2025, 3, 5)), True),
        ((date(2025, 3, 1), date(2025, 3, 2)), (date(2025, 3, 1), date(2025, 3, 2)), True),
    ],
)
def test_overlaps_half_open(
    a: tuple[date, date], b: tuple[date, date], expected: bool
) -> None:
    """Back-to-back stays share a turnover day without conflicting."""
    assert overlaps(*a, *b) is expected


@pytest.mark.unit
def test_block_interval_covers_end_day() -> None:
    """A block ending Mar 12 still blocks the night of Mar 12."""
    start, end = block_interval(date(2025, 3, 10), date(2025, 3, 12))

    assert (start, end) == (date(2025, 3, 10), date(2025, 3, 13))
    assert overlaps(date(2025, 3, 12), date(2025, 3, 14), start, end)
    assert not overlaps(date(2025, 3, 13), date(2025, 3, 15), start, end)


@pytest.mark.unit
def test_validate_stay_dates_returns_nights() -> None:
    assert validate_stay_dates(date(2025, 3, 10), date(2025, 3, 13), TODAY) == 3


@pytest.mark.unit
@pytest.mark.parametrize(
    ("check_in", "check_out"),
    [
        (date(2025, 3, 10), date(2025, 3, 10)),
        (date(2025, 3, 10), date(2025, 3, 9)),
        (date(2025, 2, 28), date(2025, 3, 3)),
        (date(2026, 2, 25), date(2026, 3, 2)),
    ],
)
def test_validate_stay_dates_rejects(check_in: date, check_out: date) -> None:
    """Empty, reversed, past and beyond-horizon ranges are rejected."""
    with pytest.raises(BadRequestError):
        validate_stay_dates(check_in, check_out, TODAY)


@pytest.mark.unit
def test_validate_stay_dates_allows_horizon_boundary() -> None:
    """Checking out exactly twelve months after today is allowed."""
    assert validate_stay_dates(date(2026, 2, 26), date(2026, 3, 1), TODAY) == 3


@pytest.mark.unit
@pytest.mark.parametrize(
    ("reason", "platform", "expected"),
    [
        ("Airbnb: Reserved", CalendarPlatform.AIRBNB, "Airbnb"),
        ("Airbnb (Not available)", CalendarPlatform.AIRBNB, "Airbnb"),
        ("My VRBO: Blocked", CalendarPlatform.VRBO, "VRBO"),
        ("Direct: CLOSED - Not available", CalendarPlatform.BOOKING_COM, "Booking.com"),
        ("Cabin feed: Family visit", CalendarPlatform.AIRBNB, "Cabin feed: Family visit"),
        ("Other feed: Reserved", CalendarPlatform.OTHER, "Other feed: Reserved"),
        ("Owner stay", None, "Owner stay"),
        (None, None, "Blocked"),
    ],
)
def test_block_label(reason: str, platform: CalendarPlatform, expected: str) -> None:
    assert block_label(reason, platform) == expected


@pytest.mark.unit
def test_split_range_cases() -> None:
    """Removing a day leaves zero, one or two remainder ranges."""
    start, end = date(2025, 3, 1), date(2025, 3, 5)

    assert split_range(start, start, start) == []
    assert split_range(start, end, start) == [(date(2025, 3, 2), end)]
    assert split_range(start, end, end) == [(start, date(2025, 3, 4))]
    assert split_range(start, end, date(2025, 3, 3)) == [
        (start, date(2025, 3, 2)),
        (date(2025, 3, 4), end),
    ]


@pytest.mark.unit
def test_split_range_rejects_outside_day() -> None:
    with pytest.raises(ValueError):
        split_range(date(2025, 3, 1), date(2025, 3, 5), date(2025, 3, 6))


@pytest.mark.unit
def test_refund_eligibility_window() -> None:
    """
    Strictly more than 24 hours before midnight UTC of check-in is refundable;
    exactly 24 hours is not.
    """
    check_in = date(2025, 3, 10)
    midnight = utc_midnight(check_in)

    assert is_refund_eligible(
        ReservationStatus.CONFIRMED, check_in, midnight - timedelta(hours=24, minutes=1)
    )
    assert not is_refund_eligible(
        ReservationStatus.CONFIRMED, check_in, midnight - timedelta(hours=24)
    )
    assert not is_refund_eligible(
        ReservationStatus.CONFIRMED, check_in, midnight - timedelta(hours=23, minutes=59)
    )


@pytest.mark.unit
def test_refund_eligibility_hold_always_eligible() -> None:
    check_in = date(2025, 3, 10)

    assert is_refund_eligible(ReservationStatus.HOLD, check_in, utc_midnight(check_in))


@pytest.mark.unit
def test_date_helpers() -> None:
    assert list(each_night(date(2025, 3, 10), date(2025, 3, 12))) == [
        date(2025, 3, 10),
        date(2025, 3, 11),
    ]
    assert list(each_day(date(2025, 3, 10), date(2025, 3, 11))) == [
        date(2025, 3, 10),
        date(2025, 3, 11),
    ]
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)
    assert utc_midnight(date(2025, 3, 10)) == datetime(2025, 3, 10, tzinfo=timezone.utc)
