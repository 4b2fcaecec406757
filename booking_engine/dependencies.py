"""
FastAPI dependency injection providers.

Routes receive the engine, the property rate card and the payment/notification
collaborators through these providers, so tests can swap any of them with
app.dependency_overrides. The admin and cron guards live here as well.
"""

from __future__ import annotations

import secrets
from typing import Generator, Optional

import structlog
from fastapi import Header, HTTPException, status
from sqlalchemy.engine import Engine

from booking_engine.config import ADMIN_API_TOKEN, CRON_SECRET, PROPERTY_SETTINGS, PropertySettings
from booking_engine.db.engine import engine
from booking_engine.network.payments import PaymentGateway
from booking_engine.services.notifications import Notifier

logger = structlog.get_logger(__name__)

_payment_gateway = PaymentGateway()
_notifier = Notifier()


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
        >>> client = TestClient(app)
        >>> response = client.post("/bookings/quote", json={...})
    """
    yield engine


def get_property_settings() -> PropertySettings:
    return PROPERTY_SETTINGS


def get_payment_gateway() -> PaymentGateway:
    return _payment_gateway


def get_notifier() -> Notifier:
    return _notifier


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _check_secret(authorization: Optional[str], expected: Optional[str], scope: str) -> None:
    if not expected:
        logger.error("auth_secret_not_configured", scope=scope)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{scope} access is not configured",
        )

    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(token, expected):
        logger.warning("auth_rejected", scope=scope)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def require_admin(authorization: Optional[str] = Header(None)) -> None:
    """Guard for owner-only routes: Bearer ADMIN_API_TOKEN."""
    _check_secret(authorization, ADMIN_API_TOKEN, "admin")


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Guard for scheduler-triggered sweeps: Bearer CRON_SECRET."""
    _check_secret(authorization, CRON_SECRET, "cron")
