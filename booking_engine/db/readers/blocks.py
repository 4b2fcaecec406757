from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from booking_engine.models.blocks import ManualBlock
from booking_engine.models.calendars import ExternalCalendar

blocks = ManualBlock.__table__
calendars = ExternalCalendar.__table__


def count_overlapping_blocks(conn: Connection, check_in: date, check_out: date) -> int:
    """
    Count blocks that cover any night in [check_in, check_out).

    A block [start, end] (inclusive days) occupies the half-open night range
    [start, end + 1), so it conflicts iff start < check_out and end >= check_in.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        check_in (date): First night of the candidate stay.
        check_out (date): Departure day of the candidate stay (exclusive).

    Returns:
        int: Number of conflicting blocks (manual and imported).
    """
    stmt = (
        select(func.count())
        .select_from(blocks)
        .where(blocks.c.start_date < check_out)
        .where(blocks.c.end_date >= check_in)
    )
    return int(conn.execute(stmt).scalar_one())


def _block_query():  # type: ignore[no-untyped-def]
    return select(
        blocks,
        calendars.c.name.label("calendar_name"),
        calendars.c.platform.label("calendar_platform"),
    ).select_from(blocks.outerjoin(calendars, blocks.c.external_calendar_id == calendars.c.id))


def list_blocks(
    conn: Connection,
    ending_on_or_after: Optional[date] = None,
    manual_only: bool = False,
) -> list[dict[str, Any]]:
    """
    List blocks ordered by start date, with their source calendar's name and platform.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        ending_on_or_after (Optional[date]): Skip blocks that ended before this day.
        manual_only (bool): Exclude blocks imported from external calendars.

    Returns:
        list[dict[str, Any]]: Block rows plus calendar_name and calendar_platform
        (both None for owner-created blocks).
    """
    stmt = _block_query().order_by(blocks.c.start_date, blocks.c.id)
    if ending_on_or_after is not None:
        stmt = stmt.where(blocks.c.end_date >= ending_on_or_after)
    if manual_only:
        stmt = stmt.where(blocks.c.external_calendar_id.is_(None))
    return [dict(row) for row in conn.execute(stmt).mappings()]


def get_block(conn: Connection, block_id: int) -> Optional[dict[str, Any]]:
    stmt = _block_query().where(blocks.c.id == block_id)
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def find_blocks_covering(conn: Connection, day: date) -> list[dict[str, Any]]:
    """Return every block whose inclusive [start_date, end_date] contains the day."""
    stmt = (
        _block_query()
        .where(blocks.c.start_date <= day)
        .where(blocks.c.end_date >= day)
        .order_by(blocks.c.id)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def blocked_days(conn: Connection, start: date, end: date) -> set[date]:
    """
    Expand every block touching [start, end] into the set of blocked days within it.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        start (date): First day of the window (inclusive).
        end (date): Last day of the window (inclusive).

    Returns:
        set[date]: Blocked days inside the window.
    """
    stmt = (
        select(blocks.c.start_date, blocks.c.end_date)
        .where(blocks.c.start_date <= end)
        .where(blocks.c.end_date >= start)
    )
    days: set[date] = set()
    for block_start, block_end in conn.execute(stmt):
        day = max(block_start, start)
        last = min(block_end, end)
        while day <= last:
            days.add(day)
            day += timedelta(days=1)
    return days
