"""
Day-by-day editing on top of range-based block storage.

Toggling a day off inside a multi-day block never mutates the block in place: the
block is deleted and its remainder(s) are recreated with new IDs. Callers must not
hold on to a block ID across a toggle.
"""

from datetime import date, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from booking_engine.db.readers.blocks import find_blocks_covering, get_block
from booking_engine.db.writers.blocks import delete_block, insert_block
from booking_engine.errors import BadRequestError, NotFoundError

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)


def split_range(start: date, end: date, day: date) -> list[tuple[date, date]]:
    """
    Remove one day from the inclusive range [start, end].

    Returns:
        list[tuple[date, date]]: Zero, one or two inclusive ranges that remain.

    Example:
        >>> split_range(date(2025, 3, 1), date(2025, 3, 5), date(2025, 3, 3))
        [(datetime.date(2025, 3, 1), datetime.date(2025, 3, 2)),
         (datetime.date(2025, 3, 4), datetime.date(2025, 3, 5))]
    """
    if not start <= day <= end:
        raise ValueError(f"{day} is outside {start}..{end}")
    if start == end:
        return []
    if day == start:
        return [(start + ONE_DAY, end)]
    if day == end:
        return [(start, end - ONE_DAY)]
    return [(start, day - ONE_DAY), (day + ONE_DAY, end)]


def toggle_day(engine: Engine, day: date, reason: Optional[str] = None) -> dict[str, Any]:
    """
    Block a free day, or unblock a day covered by owner-created blocks.

    Args:
        engine (Engine): SQLAlchemy engine.
        day (date): Day to toggle.
        reason (Optional[str]): Reason for a newly created single-day block.

    Returns:
        dict[str, Any]: {"blocked": bool, "block_ids": IDs created by the toggle}.

    Raises:
        BadRequestError: If the day is covered by a block imported from an external
            calendar; those are only changed by the next sync.
    """
    with engine.begin() as conn:
        covering = find_blocks_covering(conn, day)

        if not covering:
            block_id = insert_block(conn, day, day, reason)
            logger.info("day_blocked", day=day.isoformat(), block_id=block_id)
            return {"blocked": True, "block_ids": [block_id]}

        imported = [block for block in covering if block["external_calendar_id"] is not None]
        if imported:
            raise BadRequestError(
                f"{day.isoformat()} is blocked by external calendar "
                f"'{imported[0]['calendar_name']}' and can only change on that platform"
            )

        created: list[int] = []
        for block in covering:
            delete_block(conn, block["id"])
            for start, end in split_range(block["start_date"], block["end_date"], day):
                created.append(insert_block(conn, start, end, block["reason"]))

    logger.info(
        "day_unblocked",
        day=day.isoformat(),
        removed_block_ids=[block["id"] for block in covering],
        created_block_ids=created,
    )
    return {"blocked": False, "block_ids": created}


def create_range_block(
    engine: Engine, start_date: date, end_date: date, reason: Optional[str] = None
) -> int:
    """
    Block every day in [start_date, end_date] with one new block.

    Overlapping owner blocks are tolerated; no conflict check is made.
    """
    if end_date < start_date:
        raise BadRequestError("End date must be on or after start date")

    with engine.begin() as conn:
        block_id = insert_block(conn, start_date, end_date, reason)

    logger.info(
        "range_blocked",
        block_id=block_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
    )
    return block_id


def remove_block(engine: Engine, block_id: int) -> None:
    """Delete an owner-created block. Imported blocks belong to their calendar."""
    with engine.begin() as conn:
        block = get_block(conn, block_id)
        if block is None:
            raise NotFoundError(f"Block {block_id} not found")
        if block["external_calendar_id"] is not None:
            raise BadRequestError("Imported blocks are replaced by calendar sync, not deleted")
        delete_block(conn, block_id)

    logger.info("block_deleted", block_id=block_id)
