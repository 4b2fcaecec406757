"""SQLAlchemy model for third-party iCal feeds imported as blocks."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text, text

from booking_engine.models.base import Base
from booking_engine.utils.dates import utc_now


class CalendarPlatform(str, enum.Enum):
    AIRBNB = "AIRBNB"
    VRBO = "VRBO"
    BOOKING_COM = "BOOKING_COM"
    OTHER = "OTHER"


class SyncStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ExternalCalendar(Base):
    """
    ORM model for a configured external calendar feed.

    Owns the manual_blocks rows tagged with its id; deleting the calendar deletes
    them. The outcome of the last sync attempt is recorded on the row itself.
    """

    __tablename__ = "external_calendars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    platform = Column(Enum(CalendarPlatform, native_enum=False, length=20), nullable=False)
    ical_url = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text("TRUE"), default=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_status = Column(Enum(SyncStatus, native_enum=False, length=20), nullable=True)
    last_sync_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
