"""Payment processor event receiver route."""

import base64
import secrets
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from booking_engine.config import WEBHOOK_PASSWORD, WEBHOOK_USERNAME
from booking_engine.dependencies import get_db_engine, get_notifier, get_payment_gateway
from booking_engine.errors import BookingError
from booking_engine.network.payments import PaymentGateway
from booking_engine.services import ledger
from booking_engine.services.notifications import Notifier

router = APIRouter()
logger = structlog.get_logger(__name__)

Handler = Callable[[Engine, dict[str, Any], PaymentGateway, Notifier], None]


def validate_basic_auth(auth_header: str | None) -> bool:
    """
    Validate HTTP Basic Auth credentials against the webhook credentials.

    Args:
        auth_header: Authorization header value (e.g., "Basic dXNlcjpwYXNz")

    Returns:
        bool: True if credentials match, False otherwise
    """
    if not WEBHOOK_USERNAME or not WEBHOOK_PASSWORD:
        logger.error("webhook_credentials_not_configured")
        return False
    if not auth_header or not auth_header.startswith("Basic "):
        return False

    try:
        encoded_credentials = auth_header.replace("Basic ", "", 1)
        decoded_credentials = base64.b64decode(encoded_credentials).decode("utf-8")
        username, password = decoded_credentials.split(":", 1)
    except Exception:
        logger.exception("Failed to decode Basic Auth header")
        return False

    return secrets.compare_digest(username, WEBHOOK_USERNAME) and secrets.compare_digest(
        password, WEBHOOK_PASSWORD
    )


def _amount(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def handle_payment_succeeded(
    engine: Engine, data: dict[str, Any], gateway: PaymentGateway, notifier: Notifier
) -> None:
    """
    Handle payment.succeeded: HOLD -> CONFIRMED after re-verifying with the processor.
    """
    ledger.confirm_payment(
        engine,
        data["reservation_id"],
        data["payment_ref"],
        gateway,
        notifier,
        customer_ref=data.get("customer_ref"),
    )


def handle_payment_failed(
    engine: Engine, data: dict[str, Any], gateway: PaymentGateway, notifier: Notifier
) -> None:
    ledger.record_payment_failure(engine, data["reservation_id"])


def handle_refund_issued(
    engine: Engine, data: dict[str, Any], gateway: PaymentGateway, notifier: Notifier
) -> None:
    """Handle refund.issued for refunds made directly at the processor."""
    ledger.record_external_refund(engine, data["reservation_id"], _amount(data.get("amount")))


EVENT_HANDLERS: dict[str, Handler] = {
    "payment.succeeded": handle_payment_succeeded,
    "payment.failed": handle_payment_failed,
    "refund.issued": handle_refund_issued,
}


@router.post("/payments")
async def receive_payment_webhook(
    request: Request,
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> JSONResponse:
    """
    Handle incoming payment processor events.

    Supported event types:
    - payment.succeeded
    - payment.failed
    - refund.issued

    Authentication: HTTP Basic Auth with WEBHOOK_USERNAME/WEBHOOK_PASSWORD

    Expected payload structure:
        {
            "event": "payment.succeeded",
            "data": {
                "reservation_id": "...",
                "payment_ref": "pi_...",
                "customer_ref": "cus_..."
            }
        }

    Returns:
        JSONResponse: Acknowledgment response
    """
    auth_header = request.headers.get("Authorization")
    if not validate_basic_auth(auth_header):
        logger.warning("Webhook authentication failed")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized"},
        )

    try:
        payload: Any = await request.json()
    except Exception:
        logger.exception("Failed to parse webhook payload")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON"},
        )

    if not isinstance(payload, dict) or not isinstance(payload.get("data") or {}, dict):
        logger.warning("webhook_payload_not_an_object")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON"},
        )

    event_type: str | None = payload.get("event") or payload.get("type")
    data = payload.get("data") or {}
    logger.info(
        "webhook_received",
        event_type=event_type,
        reservation_id=data.get("reservation_id"),
    )

    if not event_type:
        logger.warning("webhook_missing_event_type")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing event or type field"},
        )

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("webhook_unsupported_event_type", event_type=event_type)
        # Acknowledge anyway so the processor does not retry
        return JSONResponse(content={"status": "ignored"})

    if not data.get("reservation_id") or (
        event_type == "payment.succeeded" and not data.get("payment_ref")
    ):
        logger.warning("webhook_missing_fields", event_type=event_type)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing reservation_id or payment_ref"},
        )

    try:
        handler(engine, data, gateway, notifier)
    except BookingError as e:
        logger.warning(
            "webhook_rejected",
            event_type=event_type,
            reservation_id=data.get("reservation_id"),
            error=e.message,
        )
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.code, "detail": e.message},
        )
    except Exception as e:
        logger.exception(
            "webhook_processing_failed",
            event_type=event_type,
            reservation_id=data.get("reservation_id"),
            error=str(e),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    return JSONResponse(content={"status": "accepted"})
