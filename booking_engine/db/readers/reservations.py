from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from booking_engine.models.damage_charges import DamageCharge
from booking_engine.models.reservations import (
    ACTIVE_STATUSES,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)

reservations = Reservation.__table__


def get_reservation(
    conn: Connection, reservation_id: str, for_update: bool = False
) -> Optional[dict[str, Any]]:
    """
    Fetch a single reservation row.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        reservation_id (str): Reservation ID.
        for_update (bool): Lock the row until the surrounding transaction ends.

    Returns:
        Optional[dict[str, Any]]: Reservation columns, or None if not found.
    """
    stmt = select(reservations).where(reservations.c.id == reservation_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().fetchone()
    return dict(row) if row else None


def count_overlapping_reservations(conn: Connection, check_in: date, check_out: date) -> int:
    """
    Count active reservations whose [check_in, check_out) intersects the given range.

    Two half-open ranges [a, b) and [c, d) intersect iff a < d and c < b, so a
    reservation checking out on the day another checks in is not a conflict.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        check_in (date): First night of the candidate stay.
        check_out (date): Departure day of the candidate stay (exclusive).

    Returns:
        int: Number of conflicting reservations.
    """
    stmt = (
        select(func.count())
        .select_from(reservations)
        .where(reservations.c.status.in_(ACTIVE_STATUSES))
        .where(reservations.c.check_in < check_out)
        .where(reservations.c.check_out > check_in)
    )
    return int(conn.execute(stmt).scalar_one())


def list_reservations(
    conn: Connection, status: Optional[ReservationStatus] = None
) -> list[dict[str, Any]]:
    """List reservations newest first, optionally filtered by status."""
    stmt = select(reservations).order_by(reservations.c.created_at.desc())
    if status is not None:
        stmt = stmt.where(reservations.c.status == status)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def list_active_reservations(
    conn: Connection, checking_out_from: Optional[date] = None
) -> list[dict[str, Any]]:
    """
    List HOLD and CONFIRMED reservations ordered by check-in.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        checking_out_from (Optional[date]): Only include stays whose check-out is on
            or after this day.

    Returns:
        list[dict[str, Any]]: Reservation rows.
    """
    stmt = (
        select(reservations)
        .where(reservations.c.status.in_(ACTIVE_STATUSES))
        .order_by(reservations.c.check_in)
    )
    if checking_out_from is not None:
        stmt = stmt.where(reservations.c.check_out >= checking_out_from)
    return [dict(row) for row in conn.execute(stmt).mappings()]


def find_stale_hold_ids(conn: Connection, created_before: datetime) -> list[str]:
    """
    Find HOLD reservations created before the cutoff whose payment never succeeded.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        created_before (datetime): Holds created strictly before this instant are stale.

    Returns:
        list[str]: Reservation IDs.
    """
    stmt = (
        select(reservations.c.id)
        .where(reservations.c.status == ReservationStatus.HOLD)
        .where(reservations.c.payment_status != PaymentStatus.SUCCEEDED)
        .where(reservations.c.created_at < created_before)
        .order_by(reservations.c.created_at)
    )
    return list(conn.execute(stmt).scalars().all())


def list_damage_charges(conn: Connection, reservation_id: str) -> list[dict[str, Any]]:
    """List side-ledger damage charges recorded against a reservation."""
    table = DamageCharge.__table__
    stmt = (
        select(table)
        .where(table.c.reservation_id == reservation_id)
        .order_by(table.c.created_at)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]
