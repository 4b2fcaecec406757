from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, Numeric

from booking_engine.models.base import Base
from booking_engine.utils.dates import utc_now


class RateOverride(Base):
    """
    Sparse per-day exception to the default nightly price and/or minimum stay.

    Keyed by calendar date (no time component). A row never has both override
    fields NULL; writers delete it instead.
    """

    __tablename__ = "rate_overrides"
    __table_args__ = (
        CheckConstraint(
            "price IS NOT NULL OR min_nights IS NOT NULL",
            name="ck_rate_overrides_not_empty",
        ),
    )

    date = Column(Date, primary_key=True)
    price = Column(Numeric(10, 2), nullable=True)
    min_nights = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
