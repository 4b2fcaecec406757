from datetime import date
from typing import Any, Optional

import structlog
from sqlalchemy import delete, insert
from sqlalchemy.engine import Connection

from booking_engine.models.blocks import ManualBlock
from booking_engine.utils.dates import utc_now

logger = structlog.get_logger(__name__)


def insert_block(
    conn: Connection,
    start_date: date,
    end_date: date,
    reason: Optional[str] = None,
) -> int:
    """
    Insert an owner-created block covering [start_date, end_date] inclusive.

    Returns:
        int: New block ID.
    """
    now = utc_now()
    result = conn.execute(
        insert(ManualBlock).values(
            start_date=start_date,
            end_date=end_date,
            reason=reason,
            created_at=now,
            updated_at=now,
        )
    )
    return int(result.inserted_primary_key[0])


def delete_block(conn: Connection, block_id: int) -> int:
    result = conn.execute(delete(ManualBlock).where(ManualBlock.id == block_id))
    return result.rowcount or 0


def replace_calendar_blocks(
    conn: Connection, calendar_id: int, events: list[dict[str, Any]]
) -> int:
    """
    Replace every block owned by an external calendar with a fresh set.

    Delete-then-insert inside the caller's transaction: a failed insert rolls back
    the delete, so the previous import survives.

    Args:
        conn (Connection): Active connection within a transaction.
        calendar_id (int): Owning external calendar.
        events (list[dict[str, Any]]): Normalized events with start_date,
            end_date, reason and external_event_id keys.

    Returns:
        int: Number of blocks inserted.
    """
    deleted = conn.execute(
        delete(ManualBlock).where(ManualBlock.external_calendar_id == calendar_id)
    ).rowcount

    now = utc_now()
    rows = [
        {
            "start_date": event["start_date"],
            "end_date": event["end_date"],
            "reason": event["reason"],
            "external_calendar_id": calendar_id,
            "external_event_id": event.get("external_event_id"),
            "created_at": now,
            "updated_at": now,
        }
        for event in events
    ]
    if rows:
        conn.execute(insert(ManualBlock), rows)

    logger.info(
        "Replaced imported blocks",
        calendar_id=calendar_id,
        deleted=deleted,
        inserted=len(rows),
    )
    return len(rows)
