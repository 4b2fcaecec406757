"""
Rate resolver: layers sparse per-date overrides over the property's default rate card.

Every price is resolved per night. The night of day d is priced by the override
for d if it has one, else by the base price; the check-out day is never a night.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_engine.config import PropertySettings
from booking_engine.db.readers.rates import get_overrides_for_nights, list_overrides
from booking_engine.db.writers.rates import clear_override_field, upsert_overrides
from booking_engine.errors import BadRequestError
from booking_engine.utils.dates import each_night

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")
SERVICE_FEE = Decimal("0.00")


@dataclass
class PriceBreakdown:
    """Server-side price of a stay. Persisted verbatim onto reservations."""

    check_in: date
    check_out: date
    number_of_nights: int
    nightly_prices: list[tuple[date, Decimal]] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    cleaning_fee: Decimal = Decimal("0.00")
    service_fee: Decimal = SERVICE_FEE
    total_price: Decimal = Decimal("0.00")
    price_per_night: Decimal = Decimal("0.00")
    min_nights: int = 1
    has_custom_rate: bool = False

    def as_reservation_columns(self) -> dict[str, Any]:
        return {
            "number_of_nights": self.number_of_nights,
            "price_per_night": self.price_per_night,
            "subtotal": self.subtotal,
            "cleaning_fee": self.cleaning_fee,
            "service_fee": self.service_fee,
            "total_price": self.total_price,
        }


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_price(
    conn: Connection, check_in: date, check_out: date, settings: PropertySettings
) -> PriceBreakdown:
    """
    Price [check_in, check_out) against the current overrides.

    Args:
        conn (Connection): Open connection; the ledger passes its admission
            transaction so the stored price matches what was checked.
        check_in (date): First night.
        check_out (date): Departure day (exclusive).
        settings (PropertySettings): Default rate card.

    Returns:
        PriceBreakdown: Per-night prices, totals, effective minimum stay and
        whether any override price was applied.

    Raises:
        BadRequestError: If the range is empty or longer than settings.max_nights.
    """
    nights = (check_out - check_in).days
    if nights <= 0:
        raise BadRequestError("Check-out must be after check-in")
    if nights > settings.max_nights:
        raise BadRequestError(f"Maximum stay is {settings.max_nights} nights")

    overrides = get_overrides_for_nights(conn, check_in, check_out)

    base_price = _money(settings.base_price)
    nightly_prices: list[tuple[date, Decimal]] = []
    min_nights = settings.min_nights
    has_custom_rate = False

    for night in each_night(check_in, check_out):
        override = overrides.get(night)
        price = base_price
        if override is not None:
            if override["price"] is not None:
                price = _money(override["price"])
                has_custom_rate = True
            if override["min_nights"] is not None:
                min_nights = max(min_nights, int(override["min_nights"]))
        nightly_prices.append((night, price))

    subtotal = sum((price for _, price in nightly_prices), Decimal("0.00"))
    cleaning_fee = _money(settings.cleaning_fee)

    return PriceBreakdown(
        check_in=check_in,
        check_out=check_out,
        number_of_nights=nights,
        nightly_prices=nightly_prices,
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        service_fee=SERVICE_FEE,
        total_price=subtotal + cleaning_fee + SERVICE_FEE,
        price_per_night=_money(subtotal / nights),
        min_nights=min_nights,
        has_custom_rate=has_custom_rate,
    )


def quote_price(
    engine: Engine, check_in: date, check_out: date, settings: PropertySettings
) -> PriceBreakdown:
    with engine.connect() as conn:
        return compute_price(conn, check_in, check_out, settings)


def set_override(
    engine: Engine,
    dates: list[date],
    price: Optional[Decimal] = None,
    min_nights: Optional[int] = None,
) -> int:
    """
    Set an override price and/or minimum stay on each of the given dates.

    Ranges must be expanded into individual dates by the caller. A field passed
    as None is left as it was.

    Returns:
        int: Number of dates written.

    Raises:
        BadRequestError: If neither field is given or a value is out of range.
    """
    if price is None and min_nights is None:
        raise BadRequestError("Provide a price, a minimum stay, or both")
    if price is not None and price <= 0:
        raise BadRequestError("Price must be greater than zero")
    if min_nights is not None and min_nights < 1:
        raise BadRequestError("Minimum stay must be at least 1 night")

    unique_dates = sorted(set(dates))
    with engine.begin() as conn:
        written = upsert_overrides(
            conn,
            unique_dates,
            price=_money(price) if price is not None else None,
            min_nights=min_nights,
        )

    logger.info("rate_overrides_set", dates=written, price=str(price), min_nights=min_nights)
    return written


def clear_override(engine: Engine, dates: list[date], field_name: str) -> int:
    """
    Null one override field ("price" or "min_nights") on the given dates.

    Rows left with neither field set are deleted.

    Returns:
        int: Number of override rows removed entirely.
    """
    if field_name not in ("price", "min_nights"):
        raise BadRequestError("Field must be 'price' or 'min_nights'")

    with engine.begin() as conn:
        deleted = clear_override_field(conn, sorted(set(dates)), field_name)

    logger.info("rate_overrides_cleared", field=field_name, dates=len(dates), deleted=deleted)
    return deleted


def get_overrides(
    engine: Engine, start: Optional[date] = None, end: Optional[date] = None
) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return list_overrides(conn, start, end)
