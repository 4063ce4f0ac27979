"""
Integration tests for the durable sync retry queue.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest
from sqlalchemy import update
from sqlalchemy.engine import Engine

from booking_ledger.db.readers.owner_notifications import list_owner_notifications
from booking_ledger.db.readers.sync_failures import get_sync_failures_for_reservation
from booking_ledger.db.writers.sync_failures import insert_sync_failure
from booking_ledger.models.sync_failures import SyncFailure
from booking_ledger.platforms.base import DateRange, PlatformAuthError, PlatformError
from booking_ledger.services.retry_queue import RetryScheduler, process_due_failures
from booking_ledger.utils.datetime import ensure_utc, utc_now

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

sync_failures = SyncFailure.__table__


def days_from_today(days: int) -> date:
    return utc_now().date() + timedelta(days=days)


class FakeAdapter:
    """Fails the first `failures` block calls with `error`, then succeeds."""

    def __init__(self, failures: int = 0, error: Optional[Exception] = None):
        self.failures = failures
        self.error = error or PlatformError("502 Bad Gateway", 502)
        self.block_calls = 0

    def block(self, connection: dict[str, Any], ranges: list[DateRange]) -> None:
        self.block_calls += 1
        if self.block_calls <= self.failures:
            raise self.error

    def unblock(self, connection: dict[str, Any], ranges: list[DateRange]) -> None:
        raise AssertionError("retries only re-send blocks")


def factory_for(adapter: FakeAdapter) -> Callable[[str, Engine], FakeAdapter]:
    return lambda platform, engine: adapter


@pytest.fixture
def queued(
    engine: Engine,
    make_reservation: Callable[..., dict[str, Any]],
    make_connection: Callable[..., dict[str, Any]],
) -> Callable[..., dict[str, Any]]:
    """Factory queueing a failed block, due at NOW by default; returns the reservation."""

    def _queue(
        retry_count: int = 0, due_at: datetime = NOW, **reservation_overrides: Any
    ) -> dict[str, Any]:
        connection = make_connection("airbnb")
        reservation = make_reservation(
            days_from_today(20), days_from_today(23), **reservation_overrides
        )
        with engine.begin() as conn:
            failure_id = insert_sync_failure(
                conn,
                owner_id=reservation["owner_id"],
                unit_id=reservation["unit_id"],
                platform="airbnb",
                connection_id=connection["id"],
                reservation_id=reservation["id"],
                action="block",
                error="502 Bad Gateway",
                next_retry_at=due_at,
            )
            if retry_count:
                conn.execute(
                    update(sync_failures)
                    .where(sync_failures.c.id == failure_id)
                    .values(retry_count=retry_count)
                )
        return reservation

    return _queue


def failures_for(engine: Engine, reservation_id: str) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return get_sync_failures_for_reservation(conn, reservation_id)


def notifications_for(engine: Engine, owner_id: str) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return list_owner_notifications(conn, owner_id)


def run_pass(engine: Engine, adapter: FakeAdapter, now: datetime = NOW) -> Any:
    return process_due_failures(
        engine, adapter_factory=factory_for(adapter), now=now, item_delay=0
    )


@pytest.mark.integration
def test_successful_retry_clears_record(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that a retry that goes through removes the record."""
    reservation = queued()
    adapter = FakeAdapter()

    summary = run_pass(engine, adapter)

    assert summary.processed == 1
    assert summary.succeeded == 1
    assert adapter.block_calls == 1
    assert failures_for(engine, reservation["id"]) == []


@pytest.mark.integration
def test_failed_retry_is_rescheduled_with_backoff(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that the first failed retry waits 2 minutes before the next attempt."""
    reservation = queued()

    summary = run_pass(engine, FakeAdapter(failures=1))

    assert summary.rescheduled == 1
    (record,) = failures_for(engine, reservation["id"])
    assert record["retry_count"] == 1
    assert ensure_utc(record["next_retry_at"]) == NOW + timedelta(seconds=120)


@pytest.mark.integration
def test_records_not_yet_due_are_skipped(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that a pass before next_retry_at leaves the record alone."""
    queued()
    adapter = FakeAdapter()

    summary = run_pass(engine, adapter, now=NOW - timedelta(seconds=1))

    assert summary.processed == 0
    assert adapter.block_calls == 0


@pytest.mark.integration
def test_last_retry_escalates_to_owner_once(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that the fifth failed retry deletes the record and notifies the owner once."""
    reservation = queued(retry_count=4)

    summary = run_pass(engine, FakeAdapter(failures=1))
    again = run_pass(engine, FakeAdapter(failures=1), now=NOW + timedelta(hours=2))

    assert summary.exhausted == 1
    assert again.processed == 0
    assert failures_for(engine, reservation["id"]) == []
    notifications = notifications_for(engine, reservation["owner_id"])
    assert len(notifications) == 1
    assert notifications[0]["type"] == "sync_failure"
    assert notifications[0]["title"] == "Sync Failure - Manual Action Required"
    assert notifications[0]["data"]["reservation_id"] == reservation["id"]


@pytest.mark.integration
def test_persistent_failure_walks_the_backoff_schedule(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test the full retry life cycle of a block that never succeeds."""
    reservation = queued()
    adapter = FakeAdapter(failures=100)
    now = NOW
    delays = []

    for _ in range(4):
        run_pass(engine, adapter, now=now)
        (record,) = failures_for(engine, reservation["id"])
        next_retry_at = ensure_utc(record["next_retry_at"])
        assert next_retry_at is not None
        delays.append((next_retry_at - now).total_seconds())
        now = next_retry_at

    summary = run_pass(engine, adapter, now=now)

    assert delays == [120, 240, 480, 960]
    assert summary.exhausted == 1
    assert adapter.block_calls == 5
    assert failures_for(engine, reservation["id"]) == []
    assert len(notifications_for(engine, reservation["owner_id"])) == 1


@pytest.mark.integration
def test_cancelled_reservation_is_discarded(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that a record whose reservation was cancelled is dropped without a call."""
    reservation = queued(status="cancelled")
    adapter = FakeAdapter()

    summary = run_pass(engine, adapter)

    assert summary.discarded == 1
    assert adapter.block_calls == 0
    assert failures_for(engine, reservation["id"]) == []


@pytest.mark.integration
def test_auth_failure_discards_and_disables_connection(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that an unrecoverable credential is handed to the owner, not retried."""
    reservation = queued()

    summary = run_pass(engine, FakeAdapter(failures=1, error=PlatformAuthError("revoked")))

    assert summary.discarded == 1
    assert failures_for(engine, reservation["id"]) == []
    notifications = notifications_for(engine, reservation["owner_id"])
    assert [n["type"] for n in notifications] == ["platform_auth_error"]


@pytest.mark.integration
def test_items_are_spaced_out(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that the pass pauses between records but not before the first one."""
    queued()
    queued()
    pauses: list[float] = []

    process_due_failures(
        engine,
        adapter_factory=factory_for(FakeAdapter()),
        now=NOW,
        item_delay=0.5,
        sleep=pauses.append,
    )

    assert pauses == [0.5]


@pytest.mark.integration
def test_scheduler_run_once(
    engine: Engine, queued: Callable[..., dict[str, Any]]
) -> None:
    """Test that a scheduler pass processes due records."""
    reservation = queued(due_at=utc_now() - timedelta(minutes=1))
    scheduler = RetryScheduler(engine, adapter_factory=factory_for(FakeAdapter()))

    summary = scheduler.run_once()

    assert summary is not None
    assert summary.succeeded == 1
    assert failures_for(engine, reservation["id"]) == []
