"""
Integration tests for the checkout completion sweep.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Callable
from unittest.mock import Mock

import pytest
from sqlalchemy.engine import Engine

from booking_ledger.db.readers.reservations import get_reservation
from booking_ledger.services.completion import complete_checked_out_reservations

TODAY = date(2030, 6, 15)


def status_of(engine: Engine, reservation_id: str) -> str:
    with engine.connect() as conn:
        row = get_reservation(conn, reservation_id)
    assert row is not None
    return row["status"]


@pytest.mark.integration
def test_past_stays_are_completed_and_unblocked(
    engine: Engine, make_reservation: Callable[..., dict[str, Any]]
) -> None:
    """Test that active stays that checked out before today are completed and synced."""
    past = make_reservation(TODAY - timedelta(days=5), TODAY - timedelta(days=1))
    pending_past = make_reservation(
        TODAY - timedelta(days=10), TODAY - timedelta(days=8), status="pending"
    )
    leaving_today = make_reservation(TODAY - timedelta(days=3), TODAY)
    future = make_reservation(TODAY + timedelta(days=3), TODAY + timedelta(days=6))
    cancelled = make_reservation(
        TODAY - timedelta(days=5), TODAY - timedelta(days=2), status="cancelled"
    )
    dispatcher = Mock()

    completed = complete_checked_out_reservations(engine, dispatcher, today=TODAY)

    assert sorted(completed) == sorted([past["id"], pending_past["id"]])
    assert status_of(engine, past["id"]) == "completed"
    assert status_of(engine, pending_past["id"]) == "completed"
    assert status_of(engine, leaving_today["id"]) == "confirmed"
    assert status_of(engine, future["id"]) == "confirmed"
    assert status_of(engine, cancelled["id"]) == "cancelled"
    assert sorted(c.args[0] for c in dispatcher.submit.call_args_list) == sorted(completed)


@pytest.mark.integration
def test_sweep_is_idempotent(
    engine: Engine, make_reservation: Callable[..., dict[str, Any]]
) -> None:
    """Test that a second sweep finds nothing left to complete."""
    make_reservation(TODAY - timedelta(days=5), TODAY - timedelta(days=1))

    first = complete_checked_out_reservations(engine, today=TODAY)
    second = complete_checked_out_reservations(engine, today=TODAY)

    assert len(first) == 1
    assert second == []
