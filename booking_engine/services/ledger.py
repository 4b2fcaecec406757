"""
Reservation ledger: admission, payment, cancellation and hold expiry.

Admission runs the availability check, pricing and insert in one SERIALIZABLE
transaction, and additionally claims one reserved_nights row per night. The UNIQUE
key on those rows means two overlapping admissions cannot both commit even on
databases with weaker isolation than advertised.

State machine::

    HOLD --payment--> CONFIRMED --owner--> COMPLETED
      |                   |
      +--cancel/expiry----+--cancel--> CANCELLED
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from booking_engine.config import (
    HOLD_TIMEOUT_MINUTES,
    MAX_GUESTS,
    REFUND_WINDOW_HOURS,
    PropertySettings,
)
from booking_engine.db.readers.reservations import (
    find_stale_hold_ids,
    get_reservation,
    list_damage_charges,
    list_reservations,
)
from booking_engine.db.writers.reservations import (
    cancel_holds,
    claim_nights,
    insert_damage_charge,
    insert_reservation,
    release_nights,
    update_reservation,
)
from booking_engine.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    MinimumStayError,
    NotFoundError,
    UpstreamError,
)
from booking_engine.metrics import (
    holds_expired,
    reservation_cancellations,
    reservation_conflicts,
    reservations_created,
)
from booking_engine.models.damage_charges import DamageChargeStatus
from booking_engine.models.reservations import PaymentStatus, ReservationStatus
from booking_engine.network.payments import ChargeOutcome, PaymentGateway
from booking_engine.services import notifications
from booking_engine.services.availability import (
    AvailabilityResult,
    find_conflicts,
    validate_stay_dates,
)
from booking_engine.services.notifications import Notifier
from booking_engine.services.pricing import PriceBreakdown, compute_price
from booking_engine.utils.dates import utc_midnight, utc_now

logger = structlog.get_logger(__name__)

MAX_ADMISSION_ATTEMPTS = 3
GUEST_CANCEL_REASON = "Cancelled by guest"
OWNER_CANCEL_REASON = "Cancelled by owner"
HOLD_EXPIRED_REASON = f"Payment not completed within {HOLD_TIMEOUT_MINUTES} minutes"

CANCELLATION_POLICY = (
    f"Cancel more than {REFUND_WINDOW_HOURS} hours before check-in (midnight UTC on "
    f"the arrival date) for a full refund. Unpaid holds can be cancelled at any time. "
    f"Cancellations within {REFUND_WINDOW_HOURS} hours of check-in are not refunded."
)


@dataclass
class GuestInfo:
    name: str
    email: str
    phone: Optional[str] = None
    special_requests: Optional[str] = None


@dataclass
class Quote:
    price: PriceBreakdown
    availability: AvailabilityResult


def _today() -> date:
    return utc_now().date()


def _validate_request(
    check_in: date,
    check_out: date,
    number_of_guests: int,
    settings: PropertySettings,
    today: date,
) -> int:
    nights = validate_stay_dates(check_in, check_out, today)
    if not 1 <= number_of_guests <= MAX_GUESTS:
        raise BadRequestError(f"Number of guests must be between 1 and {MAX_GUESTS}")
    if nights > settings.max_nights:
        raise BadRequestError(f"Maximum stay is {settings.max_nights} nights")
    return nights


def _is_serialization_failure(err: OperationalError) -> bool:
    orig = getattr(err, "orig", None)
    if getattr(orig, "sqlstate", None) in ("40001", "40P01"):
        return True
    # SQLite reports write contention as a locked database
    return "database is locked" in str(orig)


def _notification_payload(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "reservation_id": row["id"],
        "guest_name": row["guest_name"],
        "guest_email": row["guest_email"],
        "check_in": row["check_in"].isoformat(),
        "check_out": row["check_out"].isoformat(),
        "number_of_guests": row["number_of_guests"],
        "total_price": str(row["total_price"]),
        "refund_amount": str(row["refund_amount"]) if row["refund_amount"] is not None else None,
        "cancellation_reason": row["cancellation_reason"],
    }


def quote(
    engine: Engine,
    check_in: date,
    check_out: date,
    number_of_guests: int,
    settings: PropertySettings,
    today: Optional[date] = None,
) -> Quote:
    """
    Validate a candidate stay and price it, without reserving anything.

    Raises:
        BadRequestError: For malformed ranges, guest counts or stay lengths.
        MinimumStayError: If the stay is shorter than the effective minimum.
    """
    nights = _validate_request(check_in, check_out, number_of_guests, settings, today or _today())

    with engine.connect() as conn:
        price = compute_price(conn, check_in, check_out, settings)
        availability = find_conflicts(conn, check_in, check_out)

    if nights < price.min_nights:
        raise MinimumStayError(price.min_nights)
    return Quote(price=price, availability=availability)


def _admit(
    engine: Engine,
    check_in: date,
    check_out: date,
    guest: GuestInfo,
    number_of_guests: int,
    settings: PropertySettings,
) -> dict[str, Any]:
    reservation_id = str(uuid.uuid4())
    nights = (check_out - check_in).days
    serializable = engine.execution_options(isolation_level="SERIALIZABLE")

    try:
        with serializable.begin() as conn:
            conflicts = find_conflicts(conn, check_in, check_out)
            if not conflicts.available:
                reservation_conflicts.labels(stage="precheck").inc()
                raise ConflictError("The selected dates are no longer available")

            price = compute_price(conn, check_in, check_out, settings)
            if nights < price.min_nights:
                raise MinimumStayError(price.min_nights)

            insert_reservation(
                conn,
                {
                    "id": reservation_id,
                    "check_in": check_in,
                    "check_out": check_out,
                    "guest_name": guest.name,
                    "guest_email": guest.email,
                    "guest_phone": guest.phone,
                    "number_of_guests": number_of_guests,
                    "special_requests": guest.special_requests,
                    "status": ReservationStatus.HOLD,
                    "payment_status": PaymentStatus.PENDING,
                    **price.as_reservation_columns(),
                },
            )
            claim_nights(conn, reservation_id, check_in, check_out)
            row = get_reservation(conn, reservation_id)
    except IntegrityError as err:
        reservation_conflicts.labels(stage="allocation").inc()
        raise ConflictError("The selected dates are no longer available") from err

    assert row is not None
    return row


def create_reservation(
    engine: Engine,
    check_in: date,
    check_out: date,
    guest: GuestInfo,
    number_of_guests: int,
    settings: PropertySettings,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Admit a new reservation as a HOLD with payment PENDING.

    Validation (date order, past dates, booking horizon, guest count, max nights)
    happens before any database access. The conflict check, server-side pricing,
    minimum-stay check, insert and per-night allocation then run in one
    serializable transaction, retried on serialization failures.

    Args:
        engine (Engine): SQLAlchemy engine.
        check_in (date): First night.
        check_out (date): Departure day (exclusive).
        guest (GuestInfo): Guest contact details.
        number_of_guests (int): Party size.
        settings (PropertySettings): Default rate card.
        today (Optional[date]): Reference day, defaults to the current UTC date.

    Returns:
        dict[str, Any]: The stored reservation row.

    Raises:
        BadRequestError: Validation failures.
        MinimumStayError: Stay shorter than the effective minimum.
        ConflictError: Dates overlap an active reservation or a block.
    """
    _validate_request(check_in, check_out, number_of_guests, settings, today or _today())

    attempt = 1
    while True:
        try:
            row = _admit(engine, check_in, check_out, guest, number_of_guests, settings)
            break
        except OperationalError as err:
            if not _is_serialization_failure(err):
                raise
            logger.warning("reservation_serialization_retry", attempt=attempt)
            if attempt >= MAX_ADMISSION_ATTEMPTS:
                reservation_conflicts.labels(stage="serialization").inc()
                raise ConflictError("The selected dates are no longer available") from err
            attempt += 1
        except ConflictError:
            logger.info(
                "reservation_conflict",
                check_in=check_in.isoformat(),
                check_out=check_out.isoformat(),
            )
            raise

    reservations_created.inc()
    logger.info(
        "reservation_created",
        reservation_id=row["id"],
        check_in=check_in.isoformat(),
        check_out=check_out.isoformat(),
        total_price=str(row["total_price"]),
    )
    return row


def get_reservation_or_404(engine: Engine, reservation_id: str) -> dict[str, Any]:
    with engine.connect() as conn:
        row = get_reservation(conn, reservation_id)
    if row is None:
        raise NotFoundError("Reservation not found")
    return row


def lookup_reservation(engine: Engine, reservation_id: str, email: str) -> dict[str, Any]:
    """
    Guest self-service lookup by reservation ID and email.

    A wrong email is reported exactly like an unknown ID.
    """
    with engine.connect() as conn:
        row = get_reservation(conn, reservation_id)
    if row is None or row["guest_email"] != email:
        raise NotFoundError("Reservation not found")
    return row


def list_all_reservations(
    engine: Engine, status: Optional[ReservationStatus] = None
) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return list_reservations(conn, status)


def get_damage_charges(engine: Engine, reservation_id: str) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return list_damage_charges(conn, reservation_id)


def _record_payment_after_cancel(
    engine: Engine, row: dict[str, Any], payment_ref: str, notifier: Notifier
) -> dict[str, Any]:
    """Keep the reservation cancelled but record the captured payment for a refund."""
    logger.error(
        "payment_after_cancellation",
        reservation_id=row["id"],
        payment_ref=payment_ref,
        cancellation_reason=row["cancellation_reason"],
    )
    with engine.begin() as conn:
        update_reservation(
            conn,
            row["id"],
            {"payment_status": PaymentStatus.SUCCEEDED, "payment_ref": payment_ref},
            expected_statuses=[ReservationStatus.CANCELLED],
        )
        updated = get_reservation(conn, row["id"])
    assert updated is not None
    notifier.notify(
        notifications.OPERATOR_PAYMENT_AFTER_CANCEL,
        {**_notification_payload(updated), "payment_ref": payment_ref},
    )
    return updated


def confirm_payment(
    engine: Engine,
    reservation_id: str,
    payment_ref: str,
    gateway: PaymentGateway,
    notifier: Notifier,
    customer_ref: Optional[str] = None,
) -> dict[str, Any]:
    """
    Move a HOLD to CONFIRMED once the processor confirms the payment.

    Replaying the same payment event for an already-confirmed reservation is a
    no-op. A verified payment that arrives after the hold was cancelled is kept on
    the cancelled row and escalated to the operator for a manual refund.

    Raises:
        NotFoundError: Unknown reservation.
        BadRequestError: Payment not succeeded, or reservation not on hold.
    """
    row = get_reservation_or_404(engine, reservation_id)

    if row["status"] == ReservationStatus.CONFIRMED and row["payment_ref"] == payment_ref:
        logger.info("payment_already_confirmed", reservation_id=reservation_id)
        return row
    if row["status"] not in (ReservationStatus.HOLD, ReservationStatus.CANCELLED):
        raise BadRequestError(f"Cannot confirm a reservation that is {row['status'].value}")

    if not gateway.verify_payment_succeeded(payment_ref):
        raise BadRequestError("Payment has not succeeded")

    if row["status"] == ReservationStatus.CANCELLED:
        return _record_payment_after_cancel(engine, row, payment_ref, notifier)

    with engine.begin() as conn:
        updated = update_reservation(
            conn,
            reservation_id,
            {
                "status": ReservationStatus.CONFIRMED,
                "payment_status": PaymentStatus.SUCCEEDED,
                "payment_ref": payment_ref,
                "customer_ref": customer_ref or row["customer_ref"],
            },
            expected_statuses=[ReservationStatus.HOLD],
        )
        row = get_reservation(conn, reservation_id)

    assert row is not None
    if not updated:
        # Hold expired or was cancelled between the read and the update
        if row["status"] == ReservationStatus.CANCELLED:
            return _record_payment_after_cancel(engine, row, payment_ref, notifier)
        raise BadRequestError(f"Cannot confirm a reservation that is {row['status'].value}")

    logger.info("reservation_confirmed", reservation_id=reservation_id)
    payload = _notification_payload(row)
    notifier.notify(notifications.GUEST_CONFIRMATION, payload)
    notifier.notify(notifications.OPERATOR_NEW_BOOKING, payload)
    return row


def record_payment_failure(engine: Engine, reservation_id: str) -> dict[str, Any]:
    """
    Mark the payment FAILED. The reservation stays on HOLD until the sweep expires it.
    """
    with engine.begin() as conn:
        row = get_reservation(conn, reservation_id)
        if row is None:
            raise NotFoundError("Reservation not found")
        if row["status"] == ReservationStatus.HOLD:
            update_reservation(
                conn,
                reservation_id,
                {"payment_status": PaymentStatus.FAILED},
                expected_statuses=[ReservationStatus.HOLD],
            )
            row = get_reservation(conn, reservation_id)

    assert row is not None
    logger.info("payment_failed", reservation_id=reservation_id, status=row["status"].value)
    return row


def record_external_refund(
    engine: Engine, reservation_id: str, amount: Optional[Decimal] = None
) -> dict[str, Any]:
    """Record a refund issued directly at the processor (e.g. from its dashboard)."""
    with engine.begin() as conn:
        row = get_reservation(conn, reservation_id)
        if row is None:
            raise NotFoundError("Reservation not found")
        values: dict[str, Any] = {"payment_status": PaymentStatus.REFUNDED}
        if amount is not None:
            values["refund_amount"] = amount
        update_reservation(conn, reservation_id, values)
        row = get_reservation(conn, reservation_id)

    assert row is not None
    logger.info("refund_recorded", reservation_id=reservation_id, amount=str(amount))
    return row


def is_refund_eligible(status: ReservationStatus, check_in: date, now: datetime) -> bool:
    """
    Full refund if the reservation is still an unpaid HOLD, or if strictly more
    than REFUND_WINDOW_HOURS remain until midnight UTC of the check-in day.
    """
    if status == ReservationStatus.HOLD:
        return True
    return utc_midnight(check_in) - now > timedelta(hours=REFUND_WINDOW_HOURS)


def cancel_reservation(
    engine: Engine,
    reservation_id: str,
    gateway: PaymentGateway,
    notifier: Notifier,
    requester_email: Optional[str] = None,
    admin: bool = False,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Cancel a reservation, refunding it when eligible.

    Guests must supply the exact email stored on the reservation; admin callers skip
    the ownership check. The refund is issued inside the transaction holding the
    row lock, so a refund failure leaves the reservation untouched. Notifications
    go out after commit and never fail the cancellation.

    Args:
        engine (Engine): SQLAlchemy engine.
        reservation_id (str): Reservation to cancel.
        gateway (PaymentGateway): Payment collaborator used for refunds.
        notifier (Notifier): Notification collaborator.
        requester_email (Optional[str]): Email supplied by a guest.
        admin (bool): True for owner-initiated cancellations.
        reason (Optional[str]): Cancellation reason; defaults by actor.
        now (Optional[datetime]): Clock override.

    Returns:
        dict[str, Any]: The cancelled reservation row.

    Raises:
        NotFoundError: Unknown reservation.
        ForbiddenError: Guest email does not match.
        BadRequestError: Already cancelled or completed.
        UpstreamError: The refund could not be issued.
    """
    now = now or utc_now()
    actor = "owner" if admin else "guest"

    with engine.begin() as conn:
        row = get_reservation(conn, reservation_id, for_update=True)
        if row is None:
            raise NotFoundError("Reservation not found")
        if not admin and row["guest_email"] != requester_email:
            raise ForbiddenError("Email does not match this reservation")
        if row["status"] == ReservationStatus.CANCELLED:
            raise BadRequestError("Reservation is already cancelled")
        if row["status"] == ReservationStatus.COMPLETED:
            raise BadRequestError("Completed reservations cannot be cancelled")

        eligible = is_refund_eligible(row["status"], row["check_in"], now)
        refund_amount: Optional[Decimal] = None
        if eligible and row["payment_status"] == PaymentStatus.SUCCEEDED and row["payment_ref"]:
            refund_amount = gateway.issue_refund(row["payment_ref"])

        values: dict[str, Any] = {
            "status": ReservationStatus.CANCELLED,
            "cancelled_at": now,
            "cancellation_reason": reason
            or (OWNER_CANCEL_REASON if admin else GUEST_CANCEL_REASON),
        }
        if refund_amount is not None:
            values["refund_amount"] = refund_amount
            values["payment_status"] = PaymentStatus.REFUNDED

        update_reservation(conn, reservation_id, values)
        release_nights(conn, [reservation_id])
        row = get_reservation(conn, reservation_id)

    assert row is not None
    reservation_cancellations.labels(actor=actor, refunded=str(refund_amount is not None)).inc()
    logger.info(
        "reservation_cancelled",
        reservation_id=reservation_id,
        actor=actor,
        refund_eligible=eligible,
        refund_amount=str(refund_amount) if refund_amount is not None else None,
    )

    payload = _notification_payload(row)
    notifier.notify(notifications.GUEST_CANCELLATION, payload)
    notifier.notify(notifications.OPERATOR_CANCELLATION, payload)
    return row


def expire_stale_holds(
    engine: Engine, notifier: Notifier, now: Optional[datetime] = None
) -> int:
    """
    Cancel HOLD reservations older than HOLD_TIMEOUT_MINUTES whose payment never succeeded.

    Safe to run repeatedly or concurrently: each cancellation is conditional on the
    row still being HOLD, so a second run finds nothing to do.

    Returns:
        int: Number of holds cancelled by this run.
    """
    now = now or utc_now()
    cutoff = now - timedelta(minutes=HOLD_TIMEOUT_MINUTES)

    with engine.begin() as conn:
        stale_ids = find_stale_hold_ids(conn, cutoff)
        if not stale_ids:
            logger.info("holds_expired", count=0)
            return 0
        cancelled_ids = cancel_holds(conn, stale_ids, HOLD_EXPIRED_REASON, now)
        rows = [get_reservation(conn, reservation_id) for reservation_id in cancelled_ids]

    holds_expired.inc(len(cancelled_ids))
    logger.info("holds_expired", count=len(cancelled_ids))

    for row in rows:
        if row is not None:
            notifier.notify(notifications.HOLD_EXPIRED, _notification_payload(row))
    return len(cancelled_ids)


def complete_reservation(engine: Engine, reservation_id: str) -> dict[str, Any]:
    """Owner marks a CONFIRMED stay as COMPLETED."""
    with engine.begin() as conn:
        row = get_reservation(conn, reservation_id, for_update=True)
        if row is None:
            raise NotFoundError("Reservation not found")
        if row["status"] != ReservationStatus.CONFIRMED:
            raise BadRequestError("Only confirmed reservations can be completed")
        update_reservation(
            conn,
            reservation_id,
            {"status": ReservationStatus.COMPLETED},
            expected_statuses=[ReservationStatus.CONFIRMED],
        )
        release_nights(conn, [reservation_id])
        row = get_reservation(conn, reservation_id)

    assert row is not None
    logger.info("reservation_completed", reservation_id=reservation_id)
    return row


def record_damage_charge(
    engine: Engine,
    reservation_id: str,
    amount: Decimal,
    description: str,
    gateway: PaymentGateway,
    notifier: Notifier,
) -> dict[str, Any]:
    """
    Charge the guest's saved payment method and record it in the side ledger.

    The reservation's own status is never changed. A failed charge is still
    recorded (status FAILED) before UpstreamError is raised.

    Returns:
        dict[str, Any]: id, amount, description, status and payment_ref of the charge.
    """
    if amount <= 0:
        raise BadRequestError("Charge amount must be greater than zero")

    row = get_reservation_or_404(engine, reservation_id)
    if row["status"] not in (ReservationStatus.CONFIRMED, ReservationStatus.COMPLETED):
        raise BadRequestError("Damage charges require a confirmed or completed reservation")
    if not row["customer_ref"]:
        raise BadRequestError("No saved payment method for this reservation")

    try:
        outcome = gateway.charge_saved_method(row["customer_ref"], amount, description)
    except UpstreamError as e:
        outcome = ChargeOutcome(succeeded=False, error=e.message)

    status = DamageChargeStatus.SUCCEEDED if outcome.succeeded else DamageChargeStatus.FAILED
    with engine.begin() as conn:
        charge_id = insert_damage_charge(
            conn,
            reservation_id,
            amount,
            description,
            status,
            payment_ref=outcome.payment_ref,
            error=outcome.error,
        )

    logger.info(
        "damage_charge_recorded",
        reservation_id=reservation_id,
        charge_id=charge_id,
        status=status.value,
    )
    if not outcome.succeeded:
        raise UpstreamError(f"Damage charge failed: {outcome.error}")

    payload = _notification_payload(row)
    payload.update({"charge_amount": str(amount), "charge_description": description})
    notifier.notify(notifications.DAMAGE_CHARGE_NOTICE, payload)

    return {
        "id": charge_id,
        "reservation_id": reservation_id,
        "amount": amount,
        "description": description,
        "status": status,
        "payment_ref": outcome.payment_ref,
    }
