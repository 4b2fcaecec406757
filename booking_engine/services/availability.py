"""
Availability index: merges reservations, owner blocks and imported calendar blocks.

All ranges are compared as half-open night intervals. A reservation occupies
[check_in, check_out); a block stored as inclusive [start_date, end_date] occupies
[start_date, end_date + 1 day).
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_engine.config import BOOKING_HORIZON_MONTHS
from booking_engine.db.readers.blocks import count_overlapping_blocks, list_blocks
from booking_engine.db.readers.reservations import (
    count_overlapping_reservations,
    list_active_reservations,
)
from booking_engine.errors import BadRequestError
from booking_engine.models.calendars import CalendarPlatform
from booking_engine.utils.dates import add_months

logger = structlog.get_logger(__name__)

PLATFORM_LABELS = {
    CalendarPlatform.AIRBNB: "Airbnb",
    CalendarPlatform.VRBO: "VRBO",
    CalendarPlatform.BOOKING_COM: "Booking.com",
}

# Substrings that identify a platform's own event summaries
PLATFORM_KEYWORDS = {
    CalendarPlatform.AIRBNB: ("airbnb", "reserved", "not available"),
    CalendarPlatform.VRBO: ("vrbo", "homeaway", "reserved", "blocked"),
    CalendarPlatform.BOOKING_COM: ("booking.com", "closed - not available", "closed"),
}


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflicting_reservations: int
    conflicting_blocks: int


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """
    Return True if half-open intervals [a_start, a_end) and [b_start, b_end) intersect.

    Adjacent ranges ([1, 3) and [3, 5)) do not overlap, so a guest may check in on
    the day the previous guest checks out.
    """
    return a_start < b_end and b_start < a_end


def block_interval(start_date: date, end_date: date) -> tuple[date, date]:
    """Convert an inclusive block [start_date, end_date] to its half-open night range."""
    return start_date, end_date + timedelta(days=1)


def validate_stay_dates(check_in: date, check_out: date, today: date) -> int:
    """
    Reject malformed or out-of-horizon ranges before any query runs.

    Args:
        check_in (date): First night of the stay.
        check_out (date): Departure day (exclusive).
        today (date): Reference day for past-date and horizon checks.

    Returns:
        int: Number of nights.

    Raises:
        BadRequestError: If the range is empty, starts in the past, or ends beyond
            the booking horizon.
    """
    if check_in >= check_out:
        raise BadRequestError("Check-out must be after check-in")
    if check_in < today:
        raise BadRequestError("Check-in cannot be in the past")

    horizon = add_months(today, BOOKING_HORIZON_MONTHS)
    if check_out > horizon:
        raise BadRequestError(
            f"Bookings can only be made up to {BOOKING_HORIZON_MONTHS} months in advance"
        )
    return (check_out - check_in).days


def find_conflicts(conn: Connection, check_in: date, check_out: date) -> AvailabilityResult:
    """
    Count reservations and blocks that overlap [check_in, check_out) on an open connection.

    Used both by the public availability check and inside the ledger's admission
    transaction.
    """
    reservations = count_overlapping_reservations(conn, check_in, check_out)
    blocks = count_overlapping_blocks(conn, check_in, check_out)
    return AvailabilityResult(
        available=reservations == 0 and blocks == 0,
        conflicting_reservations=reservations,
        conflicting_blocks=blocks,
    )


def check_availability(
    engine: Engine, check_in: date, check_out: date, today: date
) -> AvailabilityResult:
    """
    Answer whether [check_in, check_out) is free.

    Only conflict counts are returned; guest details never leave the ledger.

    Args:
        engine (Engine): SQLAlchemy engine.
        check_in (date): First night.
        check_out (date): Departure day (exclusive).
        today (date): Reference day for validation.

    Returns:
        AvailabilityResult: Availability flag plus diagnostic conflict counts.
    """
    validate_stay_dates(check_in, check_out, today)

    with engine.connect() as conn:
        result = find_conflicts(conn, check_in, check_out)

    logger.debug(
        "availability_checked",
        check_in=check_in.isoformat(),
        check_out=check_out.isoformat(),
        available=result.available,
    )
    return result


def block_label(reason: Optional[str], platform: Optional[CalendarPlatform]) -> str:
    """
    Human label for a blocked range.

    Imported blocks whose reason is recognisably from their platform collapse to the
    platform's display name ("Airbnb"); anything else keeps its raw reason.
    """
    if platform is None:
        return reason or "Blocked"

    display_name = PLATFORM_LABELS.get(platform)
    if display_name is None or not reason:
        return reason or display_name or "Blocked"

    lowered = reason.lower()
    if display_name.lower() in lowered:
        return display_name
    for keyword in PLATFORM_KEYWORDS.get(platform, ()):
        if keyword in lowered:
            return display_name
    return reason


def _block_entry(block: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": block["id"],
        "start_date": block["start_date"],
        "end_date": block["end_date"],
        "label": block_label(block["reason"], block["calendar_platform"]),
        "imported": block["external_calendar_id"] is not None,
    }


def list_blocked_ranges(engine: Engine, today: Optional[date] = None) -> list[dict[str, Any]]:
    """
    List blocks in interval form, annotated with display labels.

    Args:
        engine (Engine): SQLAlchemy engine.
        today (Optional[date]): If given, blocks that ended before this day are skipped.

    Returns:
        list[dict[str, Any]]: id, start_date, end_date (inclusive), label, imported.
    """
    with engine.connect() as conn:
        blocks = list_blocks(conn, ending_on_or_after=today)
    return [_block_entry(block) for block in blocks]


def list_booked_ranges(engine: Engine, today: date) -> dict[str, list[dict[str, Any]]]:
    """
    Collect everything a booking calendar must grey out from today onwards.

    Reservations are reported as bare [check_in, check_out) ranges with no guest
    details.
    """
    with engine.connect() as conn:
        reservations = list_active_reservations(conn, checking_out_from=today)
        blocks = list_blocks(conn, ending_on_or_after=today)

    return {
        "reservations": [
            {"check_in": row["check_in"], "check_out": row["check_out"]} for row in reservations
        ],
        "blocks": [_block_entry(block) for block in blocks],
    }
