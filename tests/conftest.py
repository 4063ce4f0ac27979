"""
Shared fixtures for ledger tests.

Integration tests run against a throwaway SQLite file per test, created with
the same engine factory the application uses (BEGIN IMMEDIATE transactions).
"""

from __future__ import annotations

import os

os.environ.setdefault("CREDENTIAL_ENCRYPTION_KEY", "test-credential-key")
os.environ.setdefault("SYNC_SCHEDULER_ENABLED", "false")

import uuid
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Generator, Optional

import pytest
from sqlalchemy import insert
from sqlalchemy.engine import Engine

from booking_ledger.cache import credential_cache
from booking_ledger.db.engine import create_db_engine
from booking_ledger.db.writers.reservations import insert_reservation
from booking_ledger.models.registry import Base, PlatformConnection, UnitSettings
from booking_ledger.security.access_tokens import compute_expiry, generate_token
from booking_ledger.security.crypto import encrypt_secret
from booking_ledger.security.rate_limit import rate_limiter
from booking_ledger.services.reservations import (
    GuestInfo,
    PaymentParams,
    ReservationRequest,
    generate_booking_reference,
)
from booking_ledger.utils.datetime import utc_now

UNIT_ID = "unit-1"
PROPERTY_ID = "property-1"
OWNER_ID = "owner-1"
GUEST_EMAIL = "Jane.Doe@example.com"


def days_from_today(days: int) -> date:
    return utc_now().date() + timedelta(days=days)


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    """Clear the process-wide rate limiter and credential cache between tests."""
    rate_limiter.reset()
    credential_cache.clear()
    yield
    rate_limiter.reset()
    credential_cache.clear()


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """SQLite ledger database with all tables created."""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def make_unit(engine: Engine) -> Callable[..., dict[str, Any]]:
    """Factory inserting unit settings; keyword arguments override the defaults."""

    def _make(unit_id: str = UNIT_ID, **overrides: Any) -> dict[str, Any]:
        row: dict[str, Any] = {
            "unit_id": unit_id,
            "property_id": PROPERTY_ID,
            "owner_id": OWNER_ID,
            "payment_methods": {
                "stripe": {"enabled": True, "deposit_percentage": 30},
                "bank_transfer": {"enabled": True, "deposit_percentage": 20},
                "none": {"enabled": True},
            },
            "require_owner_approval": False,
            "max_guests": 4,
            "min_stay_nights": 2,
            "allow_guest_cancellation": True,
            "cancellation_deadline_hours": 48,
            **overrides,
        }
        with engine.begin() as conn:
            conn.execute(insert(UnitSettings.__table__).values(**row))
        return row

    return _make


@pytest.fixture
def unit(make_unit: Callable[..., dict[str, Any]]) -> dict[str, Any]:
    """Default unit with every payment method enabled."""
    return make_unit()


@pytest.fixture
def make_request() -> Callable[..., ReservationRequest]:
    """Factory for booking requests against the default unit."""

    def _make(
        check_in: date,
        check_out: date,
        payment_method: str = "stripe",
        payment_option: str = "deposit",
        total_price: Decimal = Decimal("500.00"),
        guest_count: int = 2,
        unit_id: str = UNIT_ID,
        **overrides: Any,
    ) -> ReservationRequest:
        fields: dict[str, Any] = {
            "unit_id": unit_id,
            "property_id": PROPERTY_ID,
            "owner_id": OWNER_ID,
            "guest": GuestInfo(name="Jane Doe", email=GUEST_EMAIL, phone="+33 6 00 00 00 00"),
            "check_in": check_in,
            "check_out": check_out,
            "guest_count": guest_count,
            "payment": PaymentParams(
                total_price=total_price,
                payment_option=payment_option,
                payment_method=payment_method,
                payment_reference="pi_test_123" if payment_method == "stripe" else None,
            ),
            **overrides,
        }
        return ReservationRequest(**fields)

    return _make


@pytest.fixture
def make_reservation(engine: Engine) -> Callable[..., dict[str, Any]]:
    """
    Factory writing a reservation row directly, bypassing booking validation.

    The returned dict carries the plaintext token under "_access_token".
    """

    def _make(
        check_in: Optional[date] = None,
        check_out: Optional[date] = None,
        **overrides: Any,
    ) -> dict[str, Any]:
        check_in = check_in or days_from_today(30)
        check_out = check_out or check_in + timedelta(days=3)
        token = generate_token()
        row: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "unit_id": UNIT_ID,
            "property_id": PROPERTY_ID,
            "owner_id": OWNER_ID,
            "guest_name": "Jane Doe",
            "guest_email": GUEST_EMAIL,
            "guest_phone": None,
            "guest_count": 2,
            "check_in": check_in,
            "check_out": check_out,
            "total_price": Decimal("500.00"),
            "deposit_amount": Decimal("150.00"),
            "paid_amount": Decimal("0.00"),
            "payment_option": "deposit",
            "payment_method": "bank_transfer",
            "payment_status": "pending",
            "payment_reference": None,
            "require_owner_approval": False,
            "status": "confirmed",
            "booking_reference": generate_booking_reference(),
            "access_token_hash": token.token_hash,
            "token_expires_at": compute_expiry(check_out),
            "notes": None,
            **overrides,
        }
        with engine.begin() as conn:
            insert_reservation(conn, row)
        return {**row, "_access_token": token.plaintext}

    return _make


@pytest.fixture
def make_connection(engine: Engine) -> Callable[..., dict[str, Any]]:
    """Factory inserting an active marketplace connection with encrypted credentials."""

    def _make(platform: str = "airbnb", **overrides: Any) -> dict[str, Any]:
        now = utc_now()
        row: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "owner_id": OWNER_ID,
            "unit_id": UNIT_ID,
            "platform": platform,
            "external_property_id": "hotel-77",
            "external_unit_id": "listing-42",
            "encrypted_access_token": encrypt_secret("access-token"),
            "encrypted_refresh_token": encrypt_secret("refresh-token"),
            "credential_expires_at": now + timedelta(days=1),
            "status": "active",
            "created_at": now,
            "updated_at": now,
            **overrides,
        }
        with engine.begin() as conn:
            conn.execute(insert(PlatformConnection.__table__).values(**row))
        return row

    return _make
