# models/reservations.py

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from booking_engine.models.base import Base
from booking_engine.utils.dates import utc_now


class ReservationStatus(str, enum.Enum):
    HOLD = "HOLD"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# Statuses that claim their nights
ACTIVE_STATUSES = (ReservationStatus.HOLD, ReservationStatus.CONFIRMED)


class Reservation(Base):
    """
    ORM model for a guest's claim on a contiguous range of nights.

    check_out is exclusive: a reservation for [Mar 10, Mar 12) occupies the nights
    of Mar 10 and Mar 11. Price columns are always computed server-side at
    admission time.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_reservations_dates_ordered"),
        Index("ix_reservations_status_dates", "status", "check_in", "check_out"),
    )

    id = Column(String(36), primary_key=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)

    guest_name = Column(String(200), nullable=False)
    guest_email = Column(String(320), nullable=False, index=True)
    guest_phone = Column(String(50), nullable=True)
    number_of_guests = Column(Integer, nullable=False)
    special_requests = Column(Text, nullable=True)

    number_of_nights = Column(Integer, nullable=False)
    price_per_night = Column(Numeric(10, 2), nullable=False)  # Average across nights
    subtotal = Column(Numeric(10, 2), nullable=False)
    cleaning_fee = Column(Numeric(10, 2), nullable=False)
    service_fee = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    status = Column(
        Enum(ReservationStatus, native_enum=False, length=20),
        nullable=False,
        default=ReservationStatus.HOLD,
    )
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=20),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_ref = Column(String(255), nullable=True)  # Processor payment reference
    customer_ref = Column(String(255), nullable=True)  # Saved payment method owner

    refund_amount = Column(Numeric(10, 2), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class ReservedNight(Base):
    """
    One row per occupied night of an active (HOLD or CONFIRMED) reservation.

    The UNIQUE primary key on ``night`` is what makes double-booking impossible:
    two transactions that both passed the availability check cannot both commit
    rows for the same night. Rows are removed when the reservation leaves the
    active statuses.
    """

    __tablename__ = "reserved_nights"

    night = Column(Date, primary_key=True)
    reservation_id = Column(
        String(36),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
