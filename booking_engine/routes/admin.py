"""
Owner-only routes: reservations, blocks, rate overrides and settings.

Every route requires ``Authorization: Bearer <ADMIN_API_TOKEN>``.
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from booking_engine.config import (
    BOOKING_HORIZON_MONTHS,
    HOLD_TIMEOUT_MINUTES,
    MAX_GUESTS,
    REFUND_WINDOW_HOURS,
    PropertySettings,
)
from booking_engine.dependencies import (
    get_db_engine,
    get_notifier,
    get_payment_gateway,
    get_property_settings,
    require_admin,
)
from booking_engine.errors import BookingError
from booking_engine.models.reservations import ReservationStatus
from booking_engine.network.payments import PaymentGateway
from booking_engine.routes._helpers import expand_dates_or_400
from booking_engine.schemas.admin import (
    BlockCreatePayload,
    DamageChargePayload,
    DamageChargeResponse,
    RateClearPayload,
    RateOverridePayload,
    RateOverrideResponse,
    SettingsResponse,
    StatusUpdatePayload,
    ToggleDayPayload,
)
from booking_engine.schemas.bookings import BlockedRange, ReservationResponse
from booking_engine.services import block_editor, ledger, pricing
from booking_engine.services.availability import list_blocked_ranges
from booking_engine.services.notifications import Notifier
from booking_engine.utils.dates import utc_now

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


# =============================================================================
# Reservations
# =============================================================================


@router.get("/reservations", response_model=list[ReservationResponse])
def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    engine: Engine = Depends(get_db_engine),
) -> list[ReservationResponse]:
    rows = ledger.list_all_reservations(engine, status_filter)
    return [ReservationResponse.from_row(row) for row in rows]


@router.get("/reservations/{reservation_id}")
def get_reservation(
    reservation_id: str, engine: Engine = Depends(get_db_engine)
) -> dict[str, Any]:
    """Reservation details plus its damage-charge side ledger."""
    row = ledger.get_reservation_or_404(engine, reservation_id)
    charges = ledger.get_damage_charges(engine, reservation_id)
    return {
        "reservation": ReservationResponse.from_row(row).model_dump(mode="json"),
        "damage_charges": [
            DamageChargeResponse(
                id=charge["id"],
                reservation_id=charge["reservation_id"],
                amount=charge["amount"],
                description=charge["description"],
                status=charge["status"].value,
                payment_ref=charge["payment_ref"],
            ).model_dump(mode="json")
            for charge in charges
        ],
    }


@router.post("/reservations/{reservation_id}/status", response_model=ReservationResponse)
def update_reservation_status(
    reservation_id: str,
    payload: StatusUpdatePayload,
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> ReservationResponse:
    """
    Complete a confirmed stay, or cancel a reservation as the owner.

    Owner cancellations skip the guest email check but follow the same refund rule.
    """
    try:
        if payload.status == "COMPLETED":
            row = ledger.complete_reservation(engine, reservation_id)
        else:
            row = ledger.cancel_reservation(
                engine,
                reservation_id,
                gateway,
                notifier,
                admin=True,
                reason=payload.reason,
            )
        return ReservationResponse.from_row(row)
    except BookingError:
        raise
    except Exception as e:
        logger.exception("status_update_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post(
    "/reservations/{reservation_id}/damage-charges",
    response_model=DamageChargeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_damage_charge(
    reservation_id: str,
    payload: DamageChargePayload,
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> DamageChargeResponse:
    charge = ledger.record_damage_charge(
        engine, reservation_id, payload.amount, payload.description, gateway, notifier
    )
    return DamageChargeResponse(**{**charge, "status": charge["status"].value})


# =============================================================================
# Blocks
# =============================================================================


@router.get("/blocks", response_model=list[BlockedRange])
def list_blocks(
    include_past: bool = Query(False, description="Include blocks that already ended"),
    engine: Engine = Depends(get_db_engine),
) -> list[BlockedRange]:
    today = None if include_past else utc_now().date()
    return [BlockedRange(**block) for block in list_blocked_ranges(engine, today)]


@router.post("/blocks", status_code=status.HTTP_201_CREATED)
def create_block(
    payload: BlockCreatePayload, engine: Engine = Depends(get_db_engine)
) -> dict[str, int]:
    block_id = block_editor.create_range_block(
        engine, payload.start_date, payload.end_date, payload.reason
    )
    return {"id": block_id}


@router.post("/blocks/toggle")
def toggle_block_day(
    payload: ToggleDayPayload, engine: Engine = Depends(get_db_engine)
) -> dict[str, Any]:
    """
    Block a free day or unblock a blocked one.

    Unblocking a day inside a longer block replaces that block with new ones, so
    previously returned block IDs may no longer exist.
    """
    return block_editor.toggle_day(engine, payload.date, payload.reason)


@router.delete("/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_block(block_id: int, engine: Engine = Depends(get_db_engine)) -> None:
    block_editor.remove_block(engine, block_id)


# =============================================================================
# Rates and settings
# =============================================================================


@router.get("/rates", response_model=list[RateOverrideResponse])
def list_rate_overrides(engine: Engine = Depends(get_db_engine)) -> list[RateOverrideResponse]:
    return [RateOverrideResponse(**row) for row in pricing.get_overrides(engine)]


@router.put("/rates")
def set_rate_overrides(
    payload: RateOverridePayload, engine: Engine = Depends(get_db_engine)
) -> dict[str, int]:
    dates = expand_dates_or_400(payload.dates, payload.start_date, payload.end_date)
    written = pricing.set_override(
        engine, dates, price=payload.price, min_nights=payload.min_nights
    )
    return {"updated": written}


@router.post("/rates/clear")
def clear_rate_overrides(
    payload: RateClearPayload, engine: Engine = Depends(get_db_engine)
) -> dict[str, int]:
    dates = expand_dates_or_400(payload.dates, payload.start_date, payload.end_date)
    deleted = pricing.clear_override(engine, dates, payload.field)
    return {"cleared": len(dates), "deleted": deleted}


@router.get("/settings", response_model=SettingsResponse)
def read_settings(settings: PropertySettings = Depends(get_property_settings)) -> SettingsResponse:
    return SettingsResponse(
        base_price=settings.base_price,
        cleaning_fee=settings.cleaning_fee,
        min_nights=settings.min_nights,
        max_nights=settings.max_nights,
        max_guests=MAX_GUESTS,
        hold_timeout_minutes=HOLD_TIMEOUT_MINUTES,
        booking_horizon_months=BOOKING_HORIZON_MONTHS,
        refund_window_hours=REFUND_WINDOW_HOURS,
        cancellation_policy=ledger.CANCELLATION_POLICY,
    )
