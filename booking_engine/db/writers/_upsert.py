"""
Generic upsert helper with IS DISTINCT FROM optimization.

Rate overrides are written with ON CONFLICT DO UPDATE so that setting a price on
a date keeps any minimum-stay already stored there (and vice versa). The insert
construct is picked from the connection's dialect, so the same statement runs on
PostgreSQL in production and SQLite in tests.
"""

from typing import Any

from sqlalchemy import or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def _dialect_insert(conn: Connection, table: type) -> Any:
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def upsert_with_distinct_check(
    conn: Connection,
    table: type,
    rows: list[dict[str, Any]],
    conflict_column: str,
    update_columns: list[str],
) -> None:
    """
    Perform upsert with IS DISTINCT FROM optimization.

    Only the listed columns are touched on conflict, and only when at least one of
    them actually changed, so no-op writes leave updated_at alone.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., RateOverride)
        rows: List of row dicts to upsert; every row must carry the same keys
        conflict_column: Column name for ON CONFLICT (usually the primary key)
        update_columns: Columns to overwrite on conflict; updated_at is added

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn=conn,
        ...         table=RateOverride,
        ...         rows=[{"date": date(2025, 7, 4), "price": Decimal("350")}],
        ...         conflict_column="date",
        ...         update_columns=["price"],
        ...     )
    """
    if not rows:
        return

    stmt = _dialect_insert(conn, table).values(rows)

    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}
    set_dict["updated_at"] = getattr(stmt.excluded, "updated_at")

    distinct_check = or_(
        *(
            getattr(table, col).is_distinct_from(getattr(stmt.excluded, col))
            for col in update_columns
        )
    )

    stmt = stmt.on_conflict_do_update(
        index_elements=[conflict_column],
        set_=set_dict,
        where=distinct_check,
    )

    conn.execute(stmt)
