from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_engine.models.rates import RateOverride

overrides = RateOverride.__table__


def get_overrides_for_nights(
    conn: Connection, check_in: date, check_out: date
) -> dict[date, dict[str, Any]]:
    """
    Fetch rate overrides for every night in [check_in, check_out).

    Args:
        conn (Connection): Active SQLAlchemy connection.
        check_in (date): First night.
        check_out (date): Departure day (exclusive).

    Returns:
        dict[date, dict[str, Any]]: Override rows keyed by date.
    """
    stmt = (
        select(overrides)
        .where(overrides.c.date >= check_in)
        .where(overrides.c.date < check_out)
    )
    return {row["date"]: dict(row) for row in conn.execute(stmt).mappings()}


def list_overrides(
    conn: Connection, start: Optional[date] = None, end: Optional[date] = None
) -> list[dict[str, Any]]:
    """List rate overrides ordered by date, optionally within [start, end]."""
    stmt = select(overrides).order_by(overrides.c.date)
    if start is not None:
        stmt = stmt.where(overrides.c.date >= start)
    if end is not None:
        stmt = stmt.where(overrides.c.date <= end)
    return [dict(row) for row in conn.execute(stmt).mappings()]
