"""
Payment collaborator: a thin client for the card processor's REST API.

Financial mutations (refunds, charges) are never retried here. A failure surfaces
to the caller as UpstreamError rather than risking a double refund or charge.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, cast
from urllib.parse import urljoin

import requests
import structlog

from booking_engine.config import PAYMENT_API_BASE_URL, PAYMENT_API_KEY, PAYMENT_TIMEOUT_SECONDS
from booking_engine.errors import UpstreamError
from booking_engine.metrics import payment_requests

logger = structlog.get_logger(__name__)

CURRENCY = "usd"


@dataclass(frozen=True)
class ChargeOutcome:
    succeeded: bool
    payment_ref: Optional[str] = None
    error: Optional[str] = None


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class PaymentGateway:
    """
    Verifies payments, issues refunds and charges saved payment methods.

    Args:
        base_url (str): Processor API root, e.g. https://api.stripe.com/v1/
        api_key (Optional[str]): Secret API key; calls fail with UpstreamError when unset.
        timeout (float): Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = PAYMENT_API_BASE_URL,
        api_key: Optional[str] = PAYMENT_API_KEY,
        timeout: float = PAYMENT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.api_key = api_key
        self.timeout = timeout

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        data: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise UpstreamError("Payment processor is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            res = requests.request(
                method,
                urljoin(self.base_url, path),
                headers=headers,
                data=data,
                params=params,
                timeout=self.timeout,
            )
            res.raise_for_status()
        except requests.RequestException as err:
            payment_requests.labels(operation=operation, status="failure").inc()
            logger.error("payment_request_failed", operation=operation, error=str(err))
            raise UpstreamError(f"Payment processor error during {operation}") from err

        payment_requests.labels(operation=operation, status="success").inc()
        return cast(dict[str, Any], res.json())

    def verify_payment_succeeded(self, payment_ref: str) -> bool:
        """Return True if the processor reports the payment as succeeded."""
        payload = self._request("verify", "GET", f"payment_intents/{payment_ref}")
        return payload.get("status") == "succeeded"

    def issue_refund(self, payment_ref: str) -> Decimal:
        """
        Refund a payment in full.

        Returns:
            Decimal: Amount refunded, in currency units.
        """
        payload = self._request(
            "refund",
            "POST",
            "refunds",
            data={"payment_intent": payment_ref},
            idempotency_key=f"refund-{payment_ref}",
        )
        amount = from_cents(int(payload.get("amount", 0)))
        logger.info("refund_issued", payment_ref=payment_ref, amount=str(amount))
        return amount

    def charge_saved_method(
        self, customer_ref: str, amount: Decimal, description: str
    ) -> ChargeOutcome:
        """
        Charge the customer's saved card off-session.

        A declined card is reported as an unsuccessful outcome; transport and API
        errors raise UpstreamError.
        """
        methods = self._request(
            "charge",
            "GET",
            "payment_methods",
            params={"customer": customer_ref, "type": "card"},
        )
        saved = methods.get("data") or []
        if not saved:
            return ChargeOutcome(succeeded=False, error="No saved payment method")

        payload = self._request(
            "charge",
            "POST",
            "payment_intents",
            data={
                "amount": to_cents(amount),
                "currency": CURRENCY,
                "customer": customer_ref,
                "payment_method": saved[0]["id"],
                "description": description,
                "off_session": "true",
                "confirm": "true",
            },
        )
        if payload.get("status") == "succeeded":
            return ChargeOutcome(succeeded=True, payment_ref=payload.get("id"))
        return ChargeOutcome(
            succeeded=False,
            payment_ref=payload.get("id"),
            error=f"Charge status {payload.get('status')}",
        )
