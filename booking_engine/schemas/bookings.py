from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from booking_engine.models.reservations import PaymentStatus, ReservationStatus


class StayPayload(BaseModel):
    """Dates and party size shared by quote and booking requests."""

    check_in: date = Field(..., description="First night of the stay")
    check_out: date = Field(..., description="Departure day (not a night of the stay)")
    number_of_guests: int = Field(..., description="Party size")


class QuotePayload(StayPayload):
    pass


class BookingCreatePayload(StayPayload):
    """
    Schema for a new booking request.

    Any price fields sent by the client are ignored; prices are computed server-side.
    """

    guest_name: str = Field(..., min_length=1, max_length=200)
    guest_email: str = Field(..., min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    guest_phone: Optional[str] = Field(None, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=2000)


class LookupPayload(BaseModel):
    reservation_id: str
    email: str


class GuestCancelPayload(BaseModel):
    email: str = Field(..., description="Email the reservation was made with")


class NightlyPrice(BaseModel):
    night: date
    price: Decimal


class QuoteResponse(BaseModel):
    check_in: date
    check_out: date
    number_of_nights: int
    nightly_prices: list[NightlyPrice]
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    total_price: Decimal
    price_per_night: Decimal
    min_nights: int
    has_custom_rate: bool
    available: bool


class AvailabilityResponse(BaseModel):
    available: bool
    conflicting_reservations: int
    conflicting_blocks: int


class BookedRange(BaseModel):
    check_in: date
    check_out: date


class BlockedRange(BaseModel):
    id: int
    start_date: date
    end_date: date
    label: str
    imported: bool


class BookedDatesResponse(BaseModel):
    reservations: list[BookedRange]
    blocks: list[BlockedRange]


class ReservationResponse(BaseModel):
    """Reservation as returned to guests and the owner. Processor references stay internal."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    check_in: date
    check_out: date
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    number_of_guests: int
    special_requests: Optional[str] = None
    number_of_nights: int
    price_per_night: Decimal
    subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    total_price: Decimal
    status: ReservationStatus
    payment_status: PaymentStatus
    refund_amount: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ReservationResponse":
        return cls.model_validate(row)
