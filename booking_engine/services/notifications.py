"""
Notification collaborator.

Notifications are fire-and-forget: a failed delivery is logged and swallowed so it
can never make a committed booking or cancellation look like it failed.
"""

from typing import Any, Optional

import requests
import structlog

from booking_engine.config import NOTIFY_WEBHOOK_URL, OPERATOR_EMAIL

logger = structlog.get_logger(__name__)

GUEST_CONFIRMATION = "guest_confirmation"
GUEST_CANCELLATION = "guest_cancellation"
OPERATOR_NEW_BOOKING = "operator_new_booking"
OPERATOR_CANCELLATION = "operator_cancellation"
DAMAGE_CHARGE_NOTICE = "damage_charge_notice"
HOLD_EXPIRED = "hold_expired"
OPERATOR_PAYMENT_AFTER_CANCEL = "operator_payment_after_cancel"


class Notifier:
    """
    Posts notification events as JSON to a delivery webhook (email/SMS relay).

    Without a webhook URL events are only logged.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = NOTIFY_WEBHOOK_URL,
        operator_email: Optional[str] = OPERATOR_EMAIL,
        timeout: float = 5.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.operator_email = operator_email
        self.timeout = timeout

    def send(self, event: str, payload: dict[str, Any]) -> None:
        if not self.webhook_url:
            logger.info("notification_skipped", notification=event, reason="no_webhook_url")
            return
        res = requests.post(
            self.webhook_url,
            json={"event": event, "operator_email": self.operator_email, "payload": payload},
            timeout=self.timeout,
        )
        res.raise_for_status()

    def notify(self, event: str, payload: dict[str, Any]) -> bool:
        """
        Deliver one event, never raising.

        Returns:
            bool: True if delivered (or intentionally skipped), False on failure.
        """
        try:
            self.send(event, payload)
        except Exception as e:
            logger.warning(
                "notification_failed",
                notification=event,
                reservation_id=payload.get("reservation_id"),
                error=str(e),
            )
            return False
        logger.info(
            "notification_sent", notification=event, reservation_id=payload.get("reservation_id")
        )
        return True
