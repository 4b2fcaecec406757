from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_engine.models.calendars import ExternalCalendar

calendars = ExternalCalendar.__table__


def get_calendar(conn: Connection, calendar_id: int) -> Optional[dict[str, Any]]:
    """
    Fetch an external calendar source.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        calendar_id (int): External calendar ID.

    Returns:
        Optional[dict[str, Any]]: Calendar columns, or None if not found.
    """
    row = (
        conn.execute(select(calendars).where(calendars.c.id == calendar_id))
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def list_calendars(conn: Connection, active_only: bool = False) -> list[dict[str, Any]]:
    """List external calendars, newest first."""
    stmt = select(calendars).order_by(calendars.c.created_at.desc(), calendars.c.id.desc())
    if active_only:
        stmt = stmt.where(calendars.c.is_active == True)  # noqa: E712
    return [dict(row) for row in conn.execute(stmt).mappings()]
