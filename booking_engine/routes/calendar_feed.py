"""Public iCal feed of direct bookings for third-party platforms to poll."""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.engine import Engine

from booking_engine.dependencies import get_db_engine
from booking_engine.services.calendar_export import export_calendar

router = APIRouter()

ICAL_MEDIA_TYPE = "text/calendar; charset=utf-8"


@router.get("/export.ics", response_class=Response)
def calendar_export(engine: Engine = Depends(get_db_engine)) -> Response:
    """
    Active reservations and owner blocks as an iCal document.

    Caching is disabled so platforms always see the current state.
    """
    return Response(
        content=export_calendar(engine),
        media_type=ICAL_MEDIA_TYPE,
        headers={
            "Content-Disposition": 'inline; filename="calendar.ics"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )
