"""
Typed errors raised by the booking engine.

Every error carries the HTTP status code the API layer responds with, so routes
never have to translate service failures by hand. The error ``code`` lets clients
tell "pick different dates" (conflict) apart from "fix your form" (bad_request).
"""

from __future__ import annotations


class BookingError(Exception):
    """Base class for all booking engine errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(BookingError):
    """Input or state transition the caller can correct."""

    status_code = 400
    code = "bad_request"


class MinimumStayError(BadRequestError):
    """Stay is shorter than the effective minimum-stay for its dates."""

    code = "minimum_stay"

    def __init__(self, min_nights: int) -> None:
        super().__init__(f"Minimum stay for these dates is {min_nights} nights")
        self.min_nights = min_nights


class ConflictError(BookingError):
    """The requested dates are no longer available."""

    status_code = 409
    code = "conflict"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ForbiddenError(BookingError):
    status_code = 403
    code = "forbidden"


class UpstreamError(BookingError):
    """A collaborator (payment processor, external calendar) failed."""

    status_code = 502
    code = "upstream_failure"
