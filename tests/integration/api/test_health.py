"""
Integration tests for health check endpoints.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient


@pytest.mark.integration
def test_health_endpoint_returns_ok(client: TestClient) -> None:
    """Test that /health endpoint returns 200 OK."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "X-Request-ID" in response.headers


@pytest.mark.integration
def test_readiness_endpoint_with_database(client: TestClient) -> None:
    """The per-test database has every table, so the service reports ready."""
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok"}}


@pytest.mark.integration
@patch("booking_engine.routes.health.check_engine_health")
def test_readiness_endpoint_database_failure(mock_check: Mock, client: TestClient) -> None:
    """
    Test that /ready returns 503 when database check fails.

    Args:
        mock_check (Mock): Mocked check_engine_health function.
        client (TestClient): API client.
    """
    mock_check.return_value = False

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["database"] == "failed"


@pytest.mark.integration
def test_metrics_endpoint(client: TestClient) -> None:
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "booking_reservations_created_total" in response.text
