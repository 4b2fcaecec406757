"""
Unit tests for the notification collaborator.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
import requests

from booking_engine.services.notifications import GUEST_CONFIRMATION, Notifier

PAYLOAD = {"reservation_id": "r-1", "guest_email": "guest@example.com"}


@pytest.mark.unit
@patch("booking_engine.services.notifications.requests.post")
def test_notify_posts_event(mock_post: Mock) -> None:
    """
    Events are posted as JSON with the operator address attached.

    Args:
        mock_post (Mock): Mocked requests.post call.
    """
    notifier = Notifier(webhook_url="https://notify.test/hook", operator_email="owner@example.com")

    assert notifier.notify(GUEST_CONFIRMATION, PAYLOAD) is True

    _, kwargs = mock_post.call_args
    assert kwargs["json"] == {
        "event": GUEST_CONFIRMATION,
        "operator_email": "owner@example.com",
        "payload": PAYLOAD,
    }


@pytest.mark.unit
@patch("booking_engine.services.notifications.requests.post")
def test_notify_swallows_delivery_failure(mock_post: Mock) -> None:
    """A failed delivery is reported as False and never raised."""
    mock_post.side_effect = requests.ConnectionError("relay down")
    notifier = Notifier(webhook_url="https://notify.test/hook")

    assert notifier.notify(GUEST_CONFIRMATION, PAYLOAD) is False


@pytest.mark.unit
@patch("booking_engine.services.notifications.requests.post")
def test_notify_swallows_http_error(mock_post: Mock) -> None:
    mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
    notifier = Notifier(webhook_url="https://notify.test/hook")

    assert notifier.notify(GUEST_CONFIRMATION, PAYLOAD) is False


@pytest.mark.unit
@patch("booking_engine.services.notifications.requests.post")
def test_notify_without_url_only_logs(mock_post: Mock) -> None:
    notifier = Notifier(webhook_url=None)

    assert notifier.notify(GUEST_CONFIRMATION, PAYLOAD) is True
    mock_post.assert_not_called()
