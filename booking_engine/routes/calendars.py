"""Owner-only routes for external iCal calendars and on-demand sync."""

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine, require_admin
from booking_engine.schemas.calendars import (
    CalendarCreatePayload,
    CalendarResponse,
    CalendarUpdatePayload,
    SyncResultResponse,
)
from booking_engine.services import calendar_sync

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=list[CalendarResponse])
def list_calendars(engine: Engine = Depends(get_db_engine)) -> list[CalendarResponse]:
    return [CalendarResponse(**row) for row in calendar_sync.list_calendar_sources(engine)]


@router.post("", response_model=CalendarResponse, status_code=status.HTTP_201_CREATED)
def create_calendar(
    payload: CalendarCreatePayload, engine: Engine = Depends(get_db_engine)
) -> CalendarResponse:
    """
    Register an external feed. Its events are imported on the next sync.
    """
    row = calendar_sync.create_calendar_source(
        engine, payload.name, payload.platform, payload.ical_url, payload.is_active
    )
    return CalendarResponse(**row)


@router.patch("/{calendar_id}", response_model=CalendarResponse)
def update_calendar(
    calendar_id: int,
    payload: CalendarUpdatePayload,
    engine: Engine = Depends(get_db_engine),
) -> CalendarResponse:
    row = calendar_sync.update_calendar_source(
        engine,
        calendar_id,
        name=payload.name,
        ical_url=payload.ical_url,
        is_active=payload.is_active,
    )
    return CalendarResponse(**row)


@router.delete("/{calendar_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_calendar(calendar_id: int, engine: Engine = Depends(get_db_engine)) -> None:
    """Delete a feed and every block imported from it."""
    calendar_sync.delete_calendar_source(engine, calendar_id)


@router.post("/{calendar_id}/sync", response_model=SyncResultResponse)
def sync_calendar(calendar_id: int, engine: Engine = Depends(get_db_engine)) -> SyncResultResponse:
    """
    Sync one feed now and report the outcome.

    A fetch failure is reported in the body (success=false), not as an HTTP error,
    and is also recorded on the calendar.
    """
    result = calendar_sync.sync_calendar(engine, calendar_id)
    return SyncResultResponse(**result.as_dict())
