"""
Integration tests for the reservation ledger: admission, payment, cancellation,
hold expiry and damage charges.
"""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import Mock

import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from booking_engine.config import PropertySettings
from booking_engine.errors import (
    BadRequestError,
    BookingError,
    ConflictError,
    ForbiddenError,
    MinimumStayError,
    NotFoundError,
    UpstreamError,
)
from booking_engine.models.damage_charges import DamageChargeStatus
from booking_engine.models.reservations import PaymentStatus, ReservationStatus, ReservedNight
from booking_engine.network.payments import ChargeOutcome
from booking_engine.services import ledger, notifications
from booking_engine.services.availability import check_availability
from booking_engine.services.block_editor import create_range_block
from booking_engine.utils.dates import utc_midnight, utc_now

TODAY = date(2025, 3, 1)
CHECK_IN = date(2025, 3, 10)
CHECK_OUT = date(2025, 3, 13)
GUEST = ledger.GuestInfo(name="Jane Doe", email="jane@example.com", phone="555-0100")


def book(
    engine: Engine,
    settings: PropertySettings,
    check_in: date = CHECK_IN,
    check_out: date = CHECK_OUT,
    guest: ledger.GuestInfo = GUEST,
) -> dict[str, Any]:
    return ledger.create_reservation(engine, check_in, check_out, guest, 2, settings, today=TODAY)


def book_confirmed(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock, **kwargs: Any
) -> dict[str, Any]:
    row = book(engine, settings, **kwargs)
    return ledger.confirm_payment(
        engine, row["id"], "pi_123", gateway, notifier, customer_ref="cus_123"
    )


def reserved_night_count(engine: Engine) -> int:
    with engine.connect() as conn:
        return int(conn.execute(select(func.count()).select_from(ReservedNight)).scalar_one())


# =============================================================================
# Admission
# =============================================================================


@pytest.mark.integration
def test_create_reservation_is_priced_hold(engine: Engine, settings: PropertySettings) -> None:
    row = book(engine, settings)

    assert row["status"] == ReservationStatus.HOLD
    assert row["payment_status"] == PaymentStatus.PENDING
    assert row["number_of_nights"] == 3
    assert row["subtotal"] == Decimal("600.00")
    assert row["total_price"] == Decimal("675.00")
    assert row["guest_email"] == "jane@example.com"
    assert reserved_night_count(engine) == 3


@pytest.mark.integration
def test_back_to_back_stays_do_not_conflict(engine: Engine, settings: PropertySettings) -> None:
    """Checking in on another guest's check-out day is allowed."""
    book(engine, settings)

    after = book(engine, settings, check_in=CHECK_OUT, check_out=date(2025, 3, 15))
    before = book(engine, settings, check_in=date(2025, 3, 8), check_out=CHECK_IN)

    assert after["status"] == ReservationStatus.HOLD
    assert before["status"] == ReservationStatus.HOLD


@pytest.mark.integration
def test_overlapping_stay_conflicts(engine: Engine, settings: PropertySettings) -> None:
    book(engine, settings)

    with pytest.raises(ConflictError):
        book(engine, settings, check_in=date(2025, 3, 12), check_out=date(2025, 3, 15))

    availability = check_availability(engine, date(2025, 3, 11), date(2025, 3, 14), TODAY)
    assert availability.available is False
    assert availability.conflicting_reservations == 1


@pytest.mark.integration
def test_block_prevents_booking(engine: Engine, settings: PropertySettings) -> None:
    create_range_block(engine, date(2025, 3, 12), date(2025, 3, 12), "Maintenance")

    with pytest.raises(ConflictError):
        book(engine, settings)


@pytest.mark.integration
def test_concurrent_overlapping_bookings_admit_one(
    engine: Engine, settings: PropertySettings
) -> None:
    """Two simultaneous requests for overlapping dates: exactly one wins."""
    stays = [
        (CHECK_IN, CHECK_OUT, ledger.GuestInfo(name="A", email="a@example.com")),
        (date(2025, 3, 11), date(2025, 3, 14), ledger.GuestInfo(name="B", email="b@example.com")),
    ]

    def attempt(args: tuple[date, date, ledger.GuestInfo]) -> str:
        check_in, check_out, guest = args
        try:
            book(engine, settings, check_in=check_in, check_out=check_out, guest=guest)
        except ConflictError:
            return "conflict"
        return "created"

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(attempt, stays))

    assert sorted(outcomes) == ["conflict", "created"]
    assert len(ledger.list_all_reservations(engine)) == 1


@pytest.mark.integration
@pytest.mark.parametrize("seed", range(6))
def test_random_concurrent_bookings_never_overlap(
    engine: Engine, settings: PropertySettings, seed: int
) -> None:
    """Randomly placed stays fired at once: survivors never share a night."""
    rng = random.Random(seed)
    stays = []
    for n in range(6):
        check_in = date(2025, 3, 5) + timedelta(days=rng.randint(0, 12))
        check_out = check_in + timedelta(days=rng.randint(2, 5))
        guest = ledger.GuestInfo(name=f"Guest {n}", email=f"guest{n}@example.com")
        stays.append((check_in, check_out, guest))

    def attempt(args: tuple[date, date, ledger.GuestInfo]) -> bool:
        check_in, check_out, guest = args
        try:
            book(engine, settings, check_in=check_in, check_out=check_out, guest=guest)
        except ConflictError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=len(stays)) as pool:
        created = sum(pool.map(attempt, stays))

    survivors = [
        row
        for row in ledger.list_all_reservations(engine)
        if row["status"] in (ReservationStatus.HOLD, ReservationStatus.CONFIRMED)
    ]
    assert len(survivors) == created >= 1
    for i, first in enumerate(survivors):
        for second in survivors[i + 1 :]:
            assert not (
                first["check_in"] < second["check_out"] and second["check_in"] < first["check_out"]
            )


@pytest.mark.integration
def test_minimum_stay_rejected(engine: Engine, settings: PropertySettings) -> None:
    with pytest.raises(MinimumStayError):
        book(engine, settings, check_out=date(2025, 3, 11))

    assert ledger.list_all_reservations(engine) == []


@pytest.mark.integration
@pytest.mark.parametrize("guests", [0, 7])
def test_guest_count_bounds(engine: Engine, settings: PropertySettings, guests: int) -> None:
    with pytest.raises(BadRequestError):
        ledger.create_reservation(engine, CHECK_IN, CHECK_OUT, GUEST, guests, settings, TODAY)


@pytest.mark.integration
def test_quote_reports_availability(engine: Engine, settings: PropertySettings) -> None:
    book(engine, settings)

    result = ledger.quote(engine, CHECK_IN, CHECK_OUT, 2, settings, today=TODAY)

    assert result.availability.available is False
    assert result.price.total_price == Decimal("675.00")


@pytest.mark.integration
def test_lookup_requires_matching_email(engine: Engine, settings: PropertySettings) -> None:
    row = book(engine, settings)

    assert ledger.lookup_reservation(engine, row["id"], "jane@example.com")["id"] == row["id"]
    with pytest.raises(NotFoundError):
        ledger.lookup_reservation(engine, row["id"], "someone@example.com")
    with pytest.raises(NotFoundError):
        ledger.lookup_reservation(engine, "missing", "jane@example.com")


# =============================================================================
# Payment
# =============================================================================


@pytest.mark.integration
def test_confirm_payment(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)

    assert row["status"] == ReservationStatus.CONFIRMED
    assert row["payment_status"] == PaymentStatus.SUCCEEDED
    assert row["payment_ref"] == "pi_123"
    assert row["customer_ref"] == "cus_123"
    gateway.verify_payment_succeeded.assert_called_once_with("pi_123")
    sent = [call.args[0] for call in notifier.notify.call_args_list]
    assert sent == [notifications.GUEST_CONFIRMATION, notifications.OPERATOR_NEW_BOOKING]


@pytest.mark.integration
def test_confirm_payment_replay_is_noop(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)

    again = ledger.confirm_payment(engine, row["id"], "pi_123", gateway, notifier)

    assert again["status"] == ReservationStatus.CONFIRMED
    assert gateway.verify_payment_succeeded.call_count == 1


@pytest.mark.integration
def test_confirm_unsucceeded_payment_rejected(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    gateway.verify_payment_succeeded.return_value = False
    row = book(engine, settings)

    with pytest.raises(BadRequestError):
        ledger.confirm_payment(engine, row["id"], "pi_123", gateway, notifier)

    assert ledger.get_reservation_or_404(engine, row["id"])["status"] == ReservationStatus.HOLD


@pytest.mark.integration
def test_payment_failure_keeps_hold(engine: Engine, settings: PropertySettings) -> None:
    row = book(engine, settings)

    failed = ledger.record_payment_failure(engine, row["id"])

    assert failed["status"] == ReservationStatus.HOLD
    assert failed["payment_status"] == PaymentStatus.FAILED


@pytest.mark.integration
def test_payment_after_hold_expiry_is_escalated(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    """A late payment keeps the expired hold cancelled and alerts the operator to refund."""
    hold = book(engine, settings)
    ledger.expire_stale_holds(engine, notifier, now=utc_now() + timedelta(minutes=11))
    notifier.notify.reset_mock()

    row = ledger.confirm_payment(engine, hold["id"], "pi_late", gateway, notifier)

    assert row["status"] == ReservationStatus.CANCELLED
    assert row["payment_status"] == PaymentStatus.SUCCEEDED
    assert row["payment_ref"] == "pi_late"
    gateway.issue_refund.assert_not_called()
    notifier.notify.assert_called_once()
    event, payload = notifier.notify.call_args.args
    assert event == notifications.OPERATOR_PAYMENT_AFTER_CANCEL
    assert payload["payment_ref"] == "pi_late"
    assert check_availability(engine, CHECK_IN, CHECK_OUT, TODAY).available is True


# =============================================================================
# Cancellation
# =============================================================================


@pytest.mark.integration
def test_guest_cancels_hold_frees_dates(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book(engine, settings)

    cancelled = ledger.cancel_reservation(
        engine, row["id"], gateway, notifier, requester_email="jane@example.com"
    )

    assert cancelled["status"] == ReservationStatus.CANCELLED
    assert cancelled["cancellation_reason"] == ledger.GUEST_CANCEL_REASON
    assert cancelled["cancelled_at"] is not None
    gateway.issue_refund.assert_not_called()
    assert reserved_night_count(engine) == 0
    assert book(engine, settings)["status"] == ReservationStatus.HOLD


@pytest.mark.integration
def test_cancel_more_than_24h_before_refunds(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)
    now = utc_midnight(CHECK_IN) - timedelta(hours=24, minutes=1)

    cancelled = ledger.cancel_reservation(
        engine, row["id"], gateway, notifier, requester_email="jane@example.com", now=now
    )

    gateway.issue_refund.assert_called_once_with("pi_123")
    assert cancelled["payment_status"] == PaymentStatus.REFUNDED
    assert cancelled["refund_amount"] == Decimal("675.00")


@pytest.mark.integration
def test_cancel_within_24h_is_not_refunded(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)
    now = utc_midnight(CHECK_IN) - timedelta(hours=24)

    cancelled = ledger.cancel_reservation(
        engine, row["id"], gateway, notifier, requester_email="jane@example.com", now=now
    )

    gateway.issue_refund.assert_not_called()
    assert cancelled["status"] == ReservationStatus.CANCELLED
    assert cancelled["payment_status"] == PaymentStatus.SUCCEEDED
    assert cancelled["refund_amount"] is None


@pytest.mark.integration
def test_failed_refund_leaves_reservation_confirmed(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)
    gateway.issue_refund.side_effect = UpstreamError("processor down")
    notifier.notify.reset_mock()

    with pytest.raises(UpstreamError):
        ledger.cancel_reservation(
            engine,
            row["id"],
            gateway,
            notifier,
            requester_email="jane@example.com",
            now=utc_midnight(CHECK_IN) - timedelta(days=5),
        )

    assert ledger.get_reservation_or_404(engine, row["id"])["status"] == ReservationStatus.CONFIRMED
    assert reserved_night_count(engine) == 3
    notifier.notify.assert_not_called()


@pytest.mark.integration
def test_guest_cancel_wrong_email_forbidden(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book(engine, settings)

    with pytest.raises(ForbiddenError):
        ledger.cancel_reservation(
            engine, row["id"], gateway, notifier, requester_email="JANE@example.com"
        )


@pytest.mark.integration
def test_cancel_errors(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    with pytest.raises(NotFoundError):
        ledger.cancel_reservation(engine, "missing", gateway, notifier, admin=True)

    row = book(engine, settings)
    ledger.cancel_reservation(engine, row["id"], gateway, notifier, admin=True)
    with pytest.raises(BadRequestError):
        ledger.cancel_reservation(engine, row["id"], gateway, notifier, admin=True)


@pytest.mark.integration
def test_owner_cancel_uses_reason(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book(engine, settings)

    cancelled = ledger.cancel_reservation(
        engine, row["id"], gateway, notifier, admin=True, reason="Pipe burst"
    )

    assert cancelled["cancellation_reason"] == "Pipe burst"
    sent = [call.args[0] for call in notifier.notify.call_args_list]
    assert sent == [notifications.GUEST_CANCELLATION, notifications.OPERATOR_CANCELLATION]


@pytest.mark.integration
def test_notification_failure_does_not_fail_cancellation(
    engine: Engine, settings: PropertySettings, gateway: Mock
) -> None:
    """A real Notifier pointed at nothing reports failure without raising."""
    row = book(engine, settings)
    notifier = notifications.Notifier(webhook_url="https://notify.invalid/hook", timeout=0.01)
    notifier.send = Mock(side_effect=OSError("unreachable"))  # type: ignore[method-assign]

    cancelled = ledger.cancel_reservation(engine, row["id"], gateway, notifier, admin=True)

    assert cancelled["status"] == ReservationStatus.CANCELLED


# =============================================================================
# Completion and hold expiry
# =============================================================================


@pytest.mark.integration
def test_complete_confirmed_reservation(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)

    completed = ledger.complete_reservation(engine, row["id"])

    assert completed["status"] == ReservationStatus.COMPLETED
    with pytest.raises(BadRequestError):
        ledger.cancel_reservation(engine, row["id"], gateway, notifier, admin=True)


@pytest.mark.integration
def test_complete_requires_confirmed(engine: Engine, settings: PropertySettings) -> None:
    row = book(engine, settings)

    with pytest.raises(BadRequestError):
        ledger.complete_reservation(engine, row["id"])


@pytest.mark.integration
def test_expire_stale_holds(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    """Only unpaid holds past the timeout are cancelled, and only once."""
    hold = book(engine, settings)
    confirmed = book_confirmed(
        engine, settings, gateway, notifier, check_in=date(2025, 4, 1), check_out=date(2025, 4, 4)
    )
    notifier.notify.reset_mock()

    assert ledger.expire_stale_holds(engine, notifier, now=utc_now()) == 0

    later = utc_now() + timedelta(minutes=11)
    assert ledger.expire_stale_holds(engine, notifier, now=later) == 1
    assert ledger.expire_stale_holds(engine, notifier, now=later) == 0

    expired = ledger.get_reservation_or_404(engine, hold["id"])
    assert expired["status"] == ReservationStatus.CANCELLED
    assert expired["cancellation_reason"] == ledger.HOLD_EXPIRED_REASON
    assert ledger.get_reservation_or_404(engine, confirmed["id"])["status"] == (
        ReservationStatus.CONFIRMED
    )
    notifier.notify.assert_called_once()
    assert notifier.notify.call_args.args[0] == notifications.HOLD_EXPIRED
    assert check_availability(engine, CHECK_IN, CHECK_OUT, TODAY).available is True


# =============================================================================
# Damage charges
# =============================================================================


@pytest.mark.integration
def test_record_damage_charge(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)
    gateway.charge_saved_method.return_value = ChargeOutcome(succeeded=True, payment_ref="pi_dmg")

    charge = ledger.record_damage_charge(
        engine, row["id"], Decimal("150.00"), "Broken lamp", gateway, notifier
    )

    assert charge["status"] == DamageChargeStatus.SUCCEEDED
    assert charge["payment_ref"] == "pi_dmg"
    gateway.charge_saved_method.assert_called_once_with(
        "cus_123", Decimal("150.00"), "Broken lamp"
    )
    assert ledger.get_reservation_or_404(engine, row["id"])["status"] == ReservationStatus.CONFIRMED
    charges = ledger.get_damage_charges(engine, row["id"])
    assert [c["amount"] for c in charges] == [Decimal("150.00")]


@pytest.mark.integration
def test_failed_damage_charge_is_recorded(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book_confirmed(engine, settings, gateway, notifier)
    gateway.charge_saved_method.return_value = ChargeOutcome(
        succeeded=False, error="card_declined"
    )

    with pytest.raises(UpstreamError):
        ledger.record_damage_charge(
            engine, row["id"], Decimal("150.00"), "Broken lamp", gateway, notifier
        )

    charges = ledger.get_damage_charges(engine, row["id"])
    assert [c["status"] for c in charges] == [DamageChargeStatus.FAILED]
    assert charges[0]["error"] == "card_declined"


@pytest.mark.integration
def test_damage_charge_requires_confirmed_stay(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> None:
    row = book(engine, settings)

    with pytest.raises(BadRequestError):
        ledger.record_damage_charge(engine, row["id"], Decimal("50"), "Stain", gateway, notifier)
    with pytest.raises(BookingError):
        ledger.record_damage_charge(engine, row["id"], Decimal("0"), "Stain", gateway, notifier)
