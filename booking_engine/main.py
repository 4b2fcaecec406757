# booking_engine/main.py

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_engine.config import ALLOWED_ORIGINS, PROPERTY_SETTINGS
from booking_engine.errors import BookingError
from booking_engine.logging_config import setup_logging
from booking_engine.middleware import RequestIDMiddleware
from booking_engine.routes.admin import router as admin_router
from booking_engine.routes.bookings import router as bookings_router
from booking_engine.routes.calendar_feed import router as calendar_feed_router
from booking_engine.routes.calendars import router as calendars_router
from booking_engine.routes.cron import router as cron_router
from booking_engine.routes.health import router as health_router
from booking_engine.routes.webhook import router as webhook_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Booking Engine API",
    description="Availability, pricing and reservations for a single vacation rental",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Translate typed service errors into {"error": code, "detail": message}."""
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, detail=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(bookings_router, prefix="/bookings", tags=["Bookings"])
app.include_router(calendar_feed_router, prefix="/calendar", tags=["Calendar"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])
app.include_router(calendars_router, prefix="/admin/calendars", tags=["Calendars"])
app.include_router(cron_router, prefix="/cron", tags=["Cron"])
app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])


@app.on_event("startup")
def startup_event() -> None:
    """Log the effective rate card on startup."""
    logger.info(
        "application_started",
        base_price=str(PROPERTY_SETTINGS.base_price),
        cleaning_fee=str(PROPERTY_SETTINGS.cleaning_fee),
        min_nights=PROPERTY_SETTINGS.min_nights,
        max_nights=PROPERTY_SETTINGS.max_nights,
    )
