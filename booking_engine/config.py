import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Shared secrets for privileged callers
CRON_SECRET = os.getenv("CRON_SECRET")
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")
WEBHOOK_USERNAME = os.getenv("WEBHOOK_USERNAME")
WEBHOOK_PASSWORD = os.getenv("WEBHOOK_PASSWORD")

# Payment collaborator
PAYMENT_API_BASE_URL = os.getenv("PAYMENT_API_BASE_URL", "https://api.stripe.com/v1/")
PAYMENT_API_KEY = os.getenv("PAYMENT_API_KEY")
PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10"))

# Notification collaborator (optional; notifications are only logged when unset)
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
OPERATOR_EMAIL = os.getenv("OPERATOR_EMAIL")

# Booking rules
HOLD_TIMEOUT_MINUTES = int(os.getenv("HOLD_TIMEOUT_MINUTES", "10"))
BOOKING_HORIZON_MONTHS = int(os.getenv("BOOKING_HORIZON_MONTHS", "12"))
REFUND_WINDOW_HOURS = int(os.getenv("REFUND_WINDOW_HOURS", "24"))
MAX_GUESTS = int(os.getenv("MAX_GUESTS", "6"))

# External calendar feeds
ICAL_FETCH_TIMEOUT_SECONDS = float(os.getenv("ICAL_FETCH_TIMEOUT_SECONDS", "10"))
ICAL_MAX_BYTES = int(os.getenv("ICAL_MAX_BYTES", "1000000"))
CALENDAR_SYNC_WORKERS = int(os.getenv("CALENDAR_SYNC_WORKERS", "4"))

# Published calendar feed
CALENDAR_NAME = os.getenv("CALENDAR_NAME", "Comal River Casa - Direct Bookings")
CALENDAR_DOMAIN = os.getenv("CALENDAR_DOMAIN", "comalrivercasa.com")
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "America/Chicago")


@dataclass(frozen=True)
class PropertySettings:
    """
    Default rate card for the property.

    Loaded once at startup from the environment (BASE_PRICE, CLEANING_FEE,
    MIN_NIGHTS, MAX_NIGHTS). Per-date exceptions live in the rate_overrides table.
    """

    base_price: Decimal
    cleaning_fee: Decimal
    min_nights: int
    max_nights: int


def load_property_settings() -> PropertySettings:
    """
    Build PropertySettings from environment variables, falling back to compiled-in defaults.

    Returns:
        PropertySettings: Immutable rate card
    """
    settings = PropertySettings(
        base_price=Decimal(os.getenv("BASE_PRICE", "200")),
        cleaning_fee=Decimal(os.getenv("CLEANING_FEE", "75")),
        min_nights=int(os.getenv("MIN_NIGHTS", "2")),
        max_nights=int(os.getenv("MAX_NIGHTS", "14")),
    )
    if settings.min_nights < 1 or settings.max_nights < settings.min_nights:
        raise ValueError("MIN_NIGHTS must be >= 1 and MAX_NIGHTS must be >= MIN_NIGHTS")
    return settings


PROPERTY_SETTINGS = load_property_settings()
