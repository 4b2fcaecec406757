from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from booking_engine.models.damage_charges import DamageCharge, DamageChargeStatus
from booking_engine.models.reservations import Reservation, ReservationStatus, ReservedNight
from booking_engine.utils.dates import each_night, utc_now

logger = structlog.get_logger(__name__)


def insert_reservation(conn: Connection, row: dict[str, Any]) -> None:
    """
    Insert a reservation row. Must run inside the admission transaction.

    Args:
        conn (Connection): Active connection within a transaction.
        row (dict[str, Any]): Reservation column values, including id.
    """
    now = utc_now()
    conn.execute(insert(Reservation).values(created_at=now, updated_at=now, **row))


def claim_nights(conn: Connection, reservation_id: str, check_in: date, check_out: date) -> int:
    """
    Claim every night of [check_in, check_out) for a reservation.

    Raises sqlalchemy.exc.IntegrityError if another active reservation already
    holds any of the nights.

    Returns:
        int: Number of nights claimed.
    """
    rows = [
        {"night": night, "reservation_id": reservation_id}
        for night in each_night(check_in, check_out)
    ]
    conn.execute(insert(ReservedNight), rows)
    return len(rows)


def release_nights(conn: Connection, reservation_ids: Iterable[str]) -> int:
    """Free the nights held by reservations that left HOLD/CONFIRMED."""
    ids = list(reservation_ids)
    if not ids:
        return 0
    result = conn.execute(delete(ReservedNight).where(ReservedNight.reservation_id.in_(ids)))
    return result.rowcount or 0


def update_reservation(
    conn: Connection,
    reservation_id: str,
    values: dict[str, Any],
    expected_statuses: Optional[Iterable[ReservationStatus]] = None,
) -> int:
    """
    Update a reservation, optionally only while it is still in one of the expected statuses.

    Args:
        conn (Connection): Active connection within a transaction.
        reservation_id (str): Reservation ID.
        values (dict[str, Any]): Columns to set.
        expected_statuses (Optional[Iterable[ReservationStatus]]): Guard for
            conditional transitions; the update is skipped when the row moved on.

    Returns:
        int: Number of rows updated (0 or 1).
    """
    stmt = update(Reservation).where(Reservation.id == reservation_id)
    if expected_statuses is not None:
        stmt = stmt.where(Reservation.status.in_(list(expected_statuses)))
    result = conn.execute(stmt.values(updated_at=utc_now(), **values))
    return result.rowcount or 0


def cancel_holds(
    conn: Connection, reservation_ids: list[str], reason: str, now: datetime
) -> list[str]:
    """
    Cancel HOLD reservations and free their nights.

    Each update re-checks status = HOLD, so a hold confirmed between the sweep's
    read and this write is left alone.

    Returns:
        list[str]: IDs that were actually cancelled.
    """
    cancelled = []
    for reservation_id in reservation_ids:
        updated = update_reservation(
            conn,
            reservation_id,
            {
                "status": ReservationStatus.CANCELLED,
                "cancelled_at": now,
                "cancellation_reason": reason,
            },
            expected_statuses=[ReservationStatus.HOLD],
        )
        if updated:
            cancelled.append(reservation_id)

    release_nights(conn, cancelled)
    logger.info("Cancelled stale holds", requested=len(reservation_ids), cancelled=len(cancelled))
    return cancelled


def insert_damage_charge(
    conn: Connection,
    reservation_id: str,
    amount: Decimal,
    description: str,
    status: DamageChargeStatus,
    payment_ref: Optional[str] = None,
    error: Optional[str] = None,
) -> int:
    """Append a damage charge to the side ledger and return its ID."""
    result = conn.execute(
        insert(DamageCharge).values(
            reservation_id=reservation_id,
            amount=amount,
            description=description,
            status=status,
            payment_ref=payment_ref,
            error=error,
            created_at=utc_now(),
        )
    )
    return int(result.inserted_primary_key[0])
