from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from booking_engine.models.calendars import CalendarPlatform, SyncStatus


class CalendarCreatePayload(BaseModel):
    """
    Schema for registering an external iCal feed. The URL must be https://.
    """

    name: str = Field(..., min_length=1, max_length=200)
    platform: CalendarPlatform
    ical_url: str = Field(..., min_length=1)
    is_active: bool = True


class CalendarUpdatePayload(BaseModel):
    """All fields optional."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    ical_url: Optional[str] = None
    is_active: Optional[bool] = None


class CalendarResponse(BaseModel):
    id: int
    name: str
    platform: CalendarPlatform
    ical_url: str
    is_active: bool
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[SyncStatus] = None
    last_sync_error: Optional[str] = None
    created_at: datetime


class SyncResultResponse(BaseModel):
    calendar_id: int
    name: Optional[str] = None
    success: bool
    events: int
    error: Optional[str] = None
    skipped: bool
