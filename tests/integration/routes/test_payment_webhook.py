"""Integration tests for the payment processor webhook endpoint."""

from __future__ import annotations

import base64
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import Mock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.engine import Engine

from booking_engine.config import PropertySettings
from booking_engine.models.reservations import PaymentStatus, ReservationStatus
from booking_engine.services import ledger

WEBHOOK_PATH = "/webhooks/payments"


def make_basic_auth_header(username: str, password: str) -> str:
    """Create HTTP Basic Auth header."""
    credentials = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(credentials).decode("utf-8")
    return f"Basic {encoded}"


AUTH = {"Authorization": make_basic_auth_header("testuser", "testpass")}


@pytest.fixture
def app(client: TestClient) -> FastAPI:
    """The application with dependency overrides installed by the client fixture."""
    return client.app  # type: ignore[return-value]


@pytest.fixture
def hold(engine: Engine, settings: PropertySettings) -> dict[str, Any]:
    """A fresh HOLD reservation."""
    return ledger.create_reservation(
        engine,
        date(2025, 3, 10),
        date(2025, 3, 13),
        ledger.GuestInfo(name="Jane Doe", email="jane@example.com"),
        2,
        settings,
        today=date(2025, 3, 1),
    )


async def post_event(app: FastAPI, payload: Any, headers: dict[str, str]) -> Any:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        return await ac.post(WEBHOOK_PATH, json=payload, headers=headers)


@pytest.mark.asyncio
async def test_webhook_missing_auth(app: FastAPI) -> None:
    """Test that webhook returns 401 when Authorization header is missing."""
    response = await post_event(app, {"event": "payment.succeeded"}, {})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_invalid_auth(app: FastAPI) -> None:
    """Test that webhook returns 401 when credentials are invalid."""
    headers = {"Authorization": make_basic_auth_header("wrong", "credentials")}

    response = await post_event(app, {"event": "payment.succeeded"}, headers)

    assert response.status_code == 401


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_invalid_json(app: FastAPI) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.post(
            WEBHOOK_PATH,
            content=b"{not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body", [[1, 2], "payment.succeeded", {"event": "payment.failed", "data": [1]}]
)
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_rejects_non_object_json(app: FastAPI, body: Any) -> None:
    """Valid JSON that is not an event object gets the same 400 as unparseable JSON."""
    response = await post_event(app, body, AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_missing_event_type(app: FastAPI) -> None:
    """Test that webhook returns 400 when event/type is missing."""
    response = await post_event(app, {}, AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing event or type field"}


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_unsupported_event_is_acknowledged(app: FastAPI) -> None:
    """Unknown events get a 200 so the processor stops retrying them."""
    response = await post_event(app, {"type": "customer.created", "data": {}}, AUTH)

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_webhook_missing_payment_ref(app: FastAPI, hold: dict[str, Any]) -> None:
    payload = {"event": "payment.succeeded", "data": {"reservation_id": hold["id"]}}

    response = await post_event(app, payload, AUTH)

    assert response.status_code == 400


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_payment_succeeded_confirms_hold(
    app: FastAPI, engine: Engine, gateway: Mock, hold: dict[str, Any]
) -> None:
    """
    payment.succeeded re-verifies with the processor and confirms the hold.
    Replaying the same event is accepted without a second verification.
    """
    payload = {
        "event": "payment.succeeded",
        "data": {"reservation_id": hold["id"], "payment_ref": "pi_1", "customer_ref": "cus_1"},
    }

    first = await post_event(app, payload, AUTH)
    replay = await post_event(app, payload, AUTH)

    assert first.status_code == 200
    assert first.json() == {"status": "accepted"}
    assert replay.status_code == 200
    gateway.verify_payment_succeeded.assert_called_once_with("pi_1")
    row = ledger.get_reservation_or_404(engine, hold["id"])
    assert row["status"] == ReservationStatus.CONFIRMED
    assert row["customer_ref"] == "cus_1"


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_payment_succeeded_for_unknown_reservation(app: FastAPI) -> None:
    payload = {
        "event": "payment.succeeded",
        "data": {"reservation_id": "missing", "payment_ref": "pi_1"},
    }

    response = await post_event(app, payload, AUTH)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_payment_failed_keeps_hold(
    app: FastAPI, engine: Engine, hold: dict[str, Any]
) -> None:
    payload = {"event": "payment.failed", "data": {"reservation_id": hold["id"]}}

    response = await post_event(app, payload, AUTH)

    assert response.status_code == 200
    row = ledger.get_reservation_or_404(engine, hold["id"])
    assert row["status"] == ReservationStatus.HOLD
    assert row["payment_status"] == PaymentStatus.FAILED


@pytest.mark.asyncio
@patch("booking_engine.routes.webhook.WEBHOOK_USERNAME", "testuser")
@patch("booking_engine.routes.webhook.WEBHOOK_PASSWORD", "testpass")
async def test_refund_issued_is_recorded(
    app: FastAPI, engine: Engine, hold: dict[str, Any]
) -> None:
    payload = {"event": "refund.issued", "data": {"reservation_id": hold["id"], "amount": "100"}}

    response = await post_event(app, payload, AUTH)

    assert response.status_code == 200
    row = ledger.get_reservation_or_404(engine, hold["id"])
    assert row["payment_status"] == PaymentStatus.REFUNDED
    assert row["refund_amount"] == Decimal("100.00")
