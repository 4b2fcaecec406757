"""
Render the direct-booking calendar as an iCal feed for third-party platforms.

Active reservations (HOLD and CONFIRMED) and owner-created blocks are published.
Blocks imported from external calendars are left out so a platform never receives
its own events back.
"""

from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy.engine import Engine

from booking_engine.config import CALENDAR_DOMAIN, CALENDAR_NAME, CALENDAR_TIMEZONE
from booking_engine.db.readers.blocks import list_blocks
from booking_engine.db.readers.reservations import list_active_reservations
from booking_engine.normalizers.ical import escape_text, fold_line
from booking_engine.utils.dates import as_utc, utc_now

logger = structlog.get_logger(__name__)

PRODID = "-//Booking Engine//Direct Bookings//EN"
CRLF = "\r\n"


def _ical_date(day: date) -> str:
    return day.strftime("%Y%m%d")


def _ical_timestamp(value: datetime) -> str:
    return as_utc(value).strftime("%Y%m%dT%H%M%SZ")


def _event(
    uid: str,
    start: date,
    end: date,
    summary: str,
    stamp: datetime,
    created: Optional[datetime],
) -> list[str]:
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{_ical_timestamp(stamp)}",
        f"DTSTART;VALUE=DATE:{_ical_date(start)}",
        f"DTEND;VALUE=DATE:{_ical_date(end)}",
        f"SUMMARY:{escape_text(summary)}",
        f"CREATED:{_ical_timestamp(created or stamp)}",
        "STATUS:CONFIRMED",
        "TRANSP:OPAQUE",
        "END:VEVENT",
    ]
    return lines


def render_calendar(
    reservations: Iterable[dict[str, Any]],
    blocks: Iterable[dict[str, Any]],
    now: Optional[datetime] = None,
    calendar_name: str = CALENDAR_NAME,
    domain: str = CALENDAR_DOMAIN,
    timezone_name: str = CALENDAR_TIMEZONE,
) -> str:
    """
    Build the VCALENDAR document.

    Reservation events span [check_in, check_out). Blocks are stored inclusive, so
    their DTEND is the day after end_date. Imported blocks are skipped.

    Args:
        reservations (Iterable[dict[str, Any]]): Active reservation rows.
        blocks (Iterable[dict[str, Any]]): Block rows.
        now (Optional[datetime]): DTSTAMP for every event.
        calendar_name (str): X-WR-CALNAME value.
        domain (str): Domain used to make UIDs globally unique.
        timezone_name (str): X-WR-TIMEZONE value.

    Returns:
        str: CRLF-separated calendar text, long lines folded at 75 octets.
    """
    stamp = now or utc_now()
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{escape_text(calendar_name)}",
        f"X-WR-TIMEZONE:{timezone_name}",
    ]

    for reservation in reservations:
        lines.extend(
            _event(
                uid=f"booking-{reservation['id']}@{domain}",
                start=reservation["check_in"],
                end=reservation["check_out"],
                summary="Reserved",
                stamp=stamp,
                created=reservation.get("created_at"),
            )
        )

    for block in blocks:
        if block.get("external_calendar_id") is not None:
            continue
        lines.extend(
            _event(
                uid=f"blocked-{block['id']}@{domain}",
                start=block["start_date"],
                end=block["end_date"] + timedelta(days=1),
                summary=block.get("reason") or "Blocked",
                stamp=stamp,
                created=block.get("created_at"),
            )
        )

    lines.append("END:VCALENDAR")
    return CRLF.join(fold_line(line) for line in lines) + CRLF


def export_calendar(engine: Engine, now: Optional[datetime] = None) -> str:
    """Read active reservations and owner blocks and render them as iCal."""
    with engine.connect() as conn:
        reservations = list_active_reservations(conn)
        blocks = list_blocks(conn, manual_only=True)

    logger.info("calendar_exported", reservations=len(reservations), blocks=len(blocks))
    return render_calendar(reservations, blocks, now=now)
