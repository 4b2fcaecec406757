from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.blocks import ManualBlock
from booking_engine.models.calendars import CalendarPlatform, ExternalCalendar, SyncStatus
from booking_engine.utils.dates import utc_now


def insert_calendar(
    conn: Connection,
    name: str,
    platform: CalendarPlatform,
    ical_url: str,
    is_active: bool = True,
) -> int:
    """
    Register an external calendar feed.

    Returns:
        int: New calendar ID.
    """
    now = utc_now()
    result = conn.execute(
        insert(ExternalCalendar).values(
            name=name,
            platform=platform,
            ical_url=ical_url,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
    )
    return int(result.inserted_primary_key[0])


def update_calendar(conn: Connection, calendar_id: int, values: dict[str, Any]) -> int:
    if not values:
        return 0
    result = conn.execute(
        update(ExternalCalendar)
        .where(ExternalCalendar.id == calendar_id)
        .values(updated_at=utc_now(), **values)
    )
    return result.rowcount or 0


def delete_calendar(conn: Connection, calendar_id: int) -> int:
    """Delete a calendar; its imported blocks go with it."""
    # SQLite only honours ON DELETE CASCADE with foreign keys enabled per connection
    conn.execute(delete(ManualBlock).where(ManualBlock.external_calendar_id == calendar_id))
    result = conn.execute(delete(ExternalCalendar).where(ExternalCalendar.id == calendar_id))
    return result.rowcount or 0


def record_sync_result(
    conn: Connection,
    calendar_id: int,
    status: SyncStatus,
    synced_at: datetime,
    error: Optional[str] = None,
) -> None:
    """Store the outcome of a sync attempt on the calendar row."""
    update_calendar(
        conn,
        calendar_id,
        {
            "last_sync_at": synced_at,
            "last_sync_status": status,
            "last_sync_error": error,
        },
    )
