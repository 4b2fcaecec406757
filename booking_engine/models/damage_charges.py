import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text

from booking_engine.models.base import Base
from booking_engine.utils.dates import utc_now


class DamageChargeStatus(str, enum.Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class DamageCharge(Base):
    """
    Side-ledger entry for an out-of-band charge against a guest's saved payment method.

    Recording a damage charge never changes the reservation's own status.
    """

    __tablename__ = "damage_charges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(
        String(36),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(Enum(DamageChargeStatus, native_enum=False, length=20), nullable=False)
    payment_ref = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
