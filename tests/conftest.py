"""
Shared fixtures for the booking engine test suite.

Environment defaults are set before anything imports booking_engine.config,
which reads the environment at import time.
"""

from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Generator
from unittest.mock import Mock

os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{Path(tempfile.gettempdir()) / 'booking_engine_default.db'}"
)
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("WEBHOOK_USERNAME", "hooks")
os.environ.setdefault("WEBHOOK_PASSWORD", "hook-secret")
os.environ.setdefault("PAYMENT_API_KEY", "sk_test_dummy")
os.environ.pop("NOTIFY_WEBHOOK_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from booking_engine.config import PropertySettings  # noqa: E402
from booking_engine.models.base import Base  # noqa: E402
from booking_engine.models.blocks import ManualBlock  # noqa: E402,F401
from booking_engine.models.calendars import ExternalCalendar  # noqa: E402,F401
from booking_engine.models.damage_charges import DamageCharge  # noqa: E402,F401
from booking_engine.models.rates import RateOverride  # noqa: E402,F401
from booking_engine.models.reservations import Reservation, ReservedNight  # noqa: E402,F401
from booking_engine.network.payments import PaymentGateway  # noqa: E402
from booking_engine.services.notifications import Notifier  # noqa: E402


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite database with every table created, fresh per test."""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'bookings.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    Base.metadata.create_all(test_engine)

    yield test_engine

    test_engine.dispose()


@pytest.fixture
def settings() -> PropertySettings:
    """Rate card used throughout the tests: $200/night, $75 cleaning, 2-14 nights."""
    return PropertySettings(
        base_price=Decimal("200"),
        cleaning_fee=Decimal("75"),
        min_nights=2,
        max_nights=14,
    )


@pytest.fixture
def gateway() -> Mock:
    """Payment collaborator double: every payment verifies, refunds return $675."""
    fake = Mock(spec=PaymentGateway)
    fake.verify_payment_succeeded.return_value = True
    fake.issue_refund.return_value = Decimal("675.00")
    return fake


@pytest.fixture
def notifier() -> Mock:
    fake = Mock(spec=Notifier)
    fake.notify.return_value = True
    return fake


@pytest.fixture
def client(
    engine: Engine, settings: PropertySettings, gateway: Mock, notifier: Mock
) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the per-test database and collaborator doubles."""
    from booking_engine.dependencies import (
        get_db_engine,
        get_notifier,
        get_payment_gateway,
        get_property_settings,
    )
    from booking_engine.main import app

    app.dependency_overrides[get_db_engine] = lambda: engine
    app.dependency_overrides[get_property_settings] = lambda: settings
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()
