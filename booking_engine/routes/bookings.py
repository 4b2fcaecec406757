"""Public booking routes: quotes, availability, reservations and guest self-service."""

from datetime import date

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from booking_engine.config import PropertySettings
from booking_engine.dependencies import (
    get_db_engine,
    get_notifier,
    get_payment_gateway,
    get_property_settings,
)
from booking_engine.errors import BookingError
from booking_engine.network.payments import PaymentGateway
from booking_engine.schemas.bookings import (
    AvailabilityResponse,
    BookedDatesResponse,
    BookingCreatePayload,
    GuestCancelPayload,
    LookupPayload,
    NightlyPrice,
    QuotePayload,
    QuoteResponse,
    ReservationResponse,
)
from booking_engine.services import ledger
from booking_engine.services.availability import check_availability, list_booked_ranges
from booking_engine.services.notifications import Notifier
from booking_engine.utils.dates import utc_now

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/quote", response_model=QuoteResponse)
def quote_stay(
    payload: QuotePayload,
    engine: Engine = Depends(get_db_engine),
    settings: PropertySettings = Depends(get_property_settings),
) -> QuoteResponse:
    """
    Price a stay and report whether it is currently available.

    Nothing is reserved; the price is recomputed when the booking is submitted.
    """
    result = ledger.quote(
        engine, payload.check_in, payload.check_out, payload.number_of_guests, settings
    )
    price = result.price
    return QuoteResponse(
        check_in=price.check_in,
        check_out=price.check_out,
        number_of_nights=price.number_of_nights,
        nightly_prices=[
            NightlyPrice(night=night, price=amount) for night, amount in price.nightly_prices
        ],
        subtotal=price.subtotal,
        cleaning_fee=price.cleaning_fee,
        service_fee=price.service_fee,
        total_price=price.total_price,
        price_per_night=price.price_per_night,
        min_nights=price.min_nights,
        has_custom_rate=price.has_custom_rate,
        available=result.availability.available,
    )


@router.get("/availability", response_model=AvailabilityResponse)
def availability(
    check_in: date = Query(..., description="First night"),
    check_out: date = Query(..., description="Departure day"),
    engine: Engine = Depends(get_db_engine),
) -> AvailabilityResponse:
    result = check_availability(engine, check_in, check_out, today=utc_now().date())
    return AvailabilityResponse(
        available=result.available,
        conflicting_reservations=result.conflicting_reservations,
        conflicting_blocks=result.conflicting_blocks,
    )


@router.get("/booked-dates", response_model=BookedDatesResponse)
def booked_dates(engine: Engine = Depends(get_db_engine)) -> BookedDatesResponse:
    """Ranges a booking calendar must grey out, from today onwards. No guest details."""
    return BookedDatesResponse.model_validate(list_booked_ranges(engine, utc_now().date()))


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreatePayload,
    engine: Engine = Depends(get_db_engine),
    settings: PropertySettings = Depends(get_property_settings),
) -> ReservationResponse:
    """
    Submit a booking. The reservation is created as a HOLD awaiting payment.

    Returns:
        ReservationResponse: The held reservation with its server-side price

    Raises:
        409 if the dates were taken since the quote, 400 for invalid requests
    """
    try:
        row = ledger.create_reservation(
            engine,
            payload.check_in,
            payload.check_out,
            ledger.GuestInfo(
                name=payload.guest_name,
                email=payload.guest_email,
                phone=payload.guest_phone,
                special_requests=payload.special_requests,
            ),
            payload.number_of_guests,
            settings,
        )
        return ReservationResponse.from_row(row)
    except BookingError:
        raise
    except Exception as e:
        logger.exception("booking_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/lookup", response_model=ReservationResponse)
def lookup_booking(
    payload: LookupPayload, engine: Engine = Depends(get_db_engine)
) -> ReservationResponse:
    row = ledger.lookup_reservation(engine, payload.reservation_id, payload.email)
    return ReservationResponse.from_row(row)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_booking(
    reservation_id: str,
    payload: GuestCancelPayload,
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> ReservationResponse:
    """
    Guest-initiated cancellation. The email must match the reservation exactly.
    """
    try:
        row = ledger.cancel_reservation(
            engine,
            reservation_id,
            gateway,
            notifier,
            requester_email=payload.email,
        )
        return ReservationResponse.from_row(row)
    except BookingError:
        raise
    except Exception as e:
        logger.exception(
            "booking_cancellation_failed", reservation_id=reservation_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/cancellation-policy")
def cancellation_policy() -> dict[str, str]:
    return {"policy": ledger.CANCELLATION_POLICY}
