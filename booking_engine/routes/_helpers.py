"""
Internal helper functions for route handlers.

Validation and conversion shared by the public and admin routers.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from booking_engine.errors import BadRequestError
from booking_engine.utils.dates import each_day

MAX_SELECTED_DAYS = 366


def expand_dates_or_400(
    dates: Optional[list[date]],
    start_date: Optional[date],
    end_date: Optional[date],
) -> list[date]:
    """
    Turn an explicit date list or an inclusive range into a sorted list of days.

    Args:
        dates: Explicit dates, used as-is when given
        start_date: First day of a range
        end_date: Last day of a range (inclusive); defaults to start_date

    Returns:
        list[date]: Unique days, ascending

    Raises:
        BadRequestError: If nothing was selected, the range is reversed, or it
            covers more than a year
    """
    if dates:
        selected = sorted(set(dates))
    elif start_date is not None:
        end = end_date or start_date
        if end < start_date:
            raise BadRequestError("End date must be on or after start date")
        selected = list(each_day(start_date, end))
    else:
        raise BadRequestError("Provide dates or a start_date/end_date range")

    if len(selected) > MAX_SELECTED_DAYS:
        raise BadRequestError(f"At most {MAX_SELECTED_DAYS} days can be changed at once")
    return selected
