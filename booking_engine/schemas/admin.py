import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class StatusUpdatePayload(BaseModel):
    """Owner-driven status transition: complete a stay or cancel it."""

    status: Literal["COMPLETED", "CANCELLED"]
    reason: Optional[str] = Field(None, max_length=500)


class DamageChargePayload(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)


class DamageChargeResponse(BaseModel):
    id: int
    reservation_id: str
    amount: Decimal
    description: str
    status: str
    payment_ref: Optional[str] = None


class BlockCreatePayload(BaseModel):
    start_date: datetime.date
    end_date: datetime.date = Field(..., description="Last blocked day (inclusive)")
    reason: Optional[str] = Field(None, max_length=500)


class ToggleDayPayload(BaseModel):
    date: datetime.date
    reason: Optional[str] = Field(None, max_length=500)


class DateSelection(BaseModel):
    """
    Either an explicit list of dates or an inclusive start/end range.

    The range is expanded into individual dates before it reaches the rate resolver.
    """

    dates: Optional[list[datetime.date]] = None
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None


class RateOverridePayload(DateSelection):
    price: Optional[Decimal] = Field(None, max_digits=10, decimal_places=2)
    min_nights: Optional[int] = None


class RateClearPayload(DateSelection):
    field: Literal["price", "min_nights"]


class RateOverrideResponse(BaseModel):
    date: datetime.date
    price: Optional[Decimal] = None
    min_nights: Optional[int] = None


class SettingsResponse(BaseModel):
    base_price: Decimal
    cleaning_fee: Decimal
    min_nights: int
    max_nights: int
    max_guests: int
    hold_timeout_minutes: int
    booking_horizon_months: int
    refund_window_hours: int
    cancellation_policy: str
