from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text

from booking_engine.models.base import Base
from booking_engine.utils.dates import utc_now


class ManualBlock(Base):
    """
    ORM model for an interval of unavailable days not tied to a paying guest.

    start_date and end_date are both inclusive: every day in [start_date, end_date]
    is blocked. Availability treats the block as the half-open night range
    [start_date, end_date + 1 day).

    Rows with an external_calendar_id are owned by that calendar and are replaced
    wholesale on every sync.
    """

    __tablename__ = "manual_blocks"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_manual_blocks_dates_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    reason = Column(Text, nullable=True)
    external_calendar_id = Column(
        Integer,
        ForeignKey("external_calendars.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    external_event_id = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
