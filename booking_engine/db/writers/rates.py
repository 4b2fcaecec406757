from datetime import date
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import and_, delete, update
from sqlalchemy.engine import Connection

from booking_engine.db.writers._upsert import upsert_with_distinct_check
from booking_engine.models.rates import RateOverride
from booking_engine.utils.dates import utc_now

logger = structlog.get_logger(__name__)

OVERRIDE_FIELDS = ("price", "min_nights")


def upsert_overrides(
    conn: Connection,
    dates: list[date],
    price: Optional[Decimal] = None,
    min_nights: Optional[int] = None,
) -> int:
    """
    Set the given override fields on every date, leaving the other field untouched.

    Args:
        conn (Connection): Active connection within a transaction.
        dates (list[date]): Dates to override.
        price (Optional[Decimal]): Nightly price, or None to leave as is.
        min_nights (Optional[int]): Minimum stay, or None to leave as is.

    Returns:
        int: Number of dates written.
    """
    values: dict[str, object] = {}
    if price is not None:
        values["price"] = price
    if min_nights is not None:
        values["min_nights"] = min_nights
    if not values or not dates:
        return 0

    now = utc_now()
    rows = [{"date": day, **values, "created_at": now, "updated_at": now} for day in dates]

    upsert_with_distinct_check(
        conn=conn,
        table=RateOverride,
        rows=rows,
        conflict_column="date",
        update_columns=list(values),
    )
    logger.info("Upserted rate overrides", dates=len(rows), fields=list(values))
    return len(rows)


def clear_override_field(conn: Connection, dates: list[date], field: str) -> int:
    """
    Null one override field on the given dates and drop rows left with nothing set.

    Args:
        conn (Connection): Active connection within a transaction.
        dates (list[date]): Dates to clear.
        field (str): "price" or "min_nights".

    Returns:
        int: Number of rows deleted because both fields ended up NULL.
    """
    if field not in OVERRIDE_FIELDS:
        raise ValueError(f"Unknown override field: {field}")
    if not dates:
        return 0

    column = getattr(RateOverride, field)
    other = getattr(RateOverride, "min_nights" if field == "price" else "price")

    # Rows whose other field is empty would violate the not-empty check once
    # nulled, so delete those first and null the rest.
    deleted = conn.execute(
        delete(RateOverride).where(and_(RateOverride.date.in_(dates), other.is_(None)))
    ).rowcount
    conn.execute(
        update(RateOverride)
        .where(RateOverride.date.in_(dates))
        .values({column: None, RateOverride.updated_at: utc_now()})
    )
    logger.info("Cleared rate override field", field=field, dates=len(dates), deleted=deleted)
    return deleted or 0
