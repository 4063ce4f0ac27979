"""
Outbound calendar sync for committed reservation writes.

Every ledger write is followed (after commit) by a call to
SyncDispatcher.submit(). The dispatcher runs sync_reservation() on a worker
thread, so marketplace latency and failures never reach the booking caller.

Policy by reservation status:
    pending, confirmed -> block the dates on every active connection
    completed          -> unblock them
    cancelled          -> leave the marketplaces untouched; an owner reopens
                          the dates by hand so a mistaken cancellation
                          cannot hand the stay to another channel

A failed block is queued in sync_failures for the retry scheduler. An
authorization failure that only the owner can fix disables the connection
and notifies the owner instead.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from booking_ledger.config import SYNC_DISPATCH_WORKERS, SYNC_INITIAL_RETRY_DELAY_SECONDS
from booking_ledger.db.readers.platform_connections import get_active_connections
from booking_ledger.db.readers.reservations import get_reservation
from booking_ledger.db.writers.owner_notifications import insert_owner_notification
from booking_ledger.db.writers.platform_connections import mark_connection_error, update_last_synced
from booking_ledger.db.writers.sync_failures import insert_sync_failure
from booking_ledger.metrics import platform_sync_total, sync_failures_recorded
from booking_ledger.models.reservations import ACTIVE_STATUSES
from booking_ledger.platforms.base import PlatformAuthError, date_ranges_for
from booking_ledger.platforms.registry import AdapterFactory, get_adapter
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

BLOCK = "block"
UNBLOCK = "unblock"


@dataclass
class SyncSummary:
    reservation_id: str
    action: Optional[str] = None
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def sync_action_for_status(status: str) -> Optional[str]:
    """Return the outbound action a reservation status calls for, if any."""
    if status in ACTIVE_STATUSES:
        return BLOCK
    if status == "completed":
        return UNBLOCK
    return None


def push_availability(
    engine: Engine,
    adapter_factory: AdapterFactory,
    connection: dict[str, Any],
    action: str,
    reservation: dict[str, Any],
) -> None:
    """
    Push one reservation's dates to one marketplace connection.

    Raises:
        PlatformAuthError: If the connection needs owner re-authorization
        Exception: Any other adapter failure
    """
    adapter = adapter_factory(connection["platform"], engine)
    ranges = date_ranges_for(reservation["check_in"], reservation["check_out"])
    if action == BLOCK:
        adapter.block(connection, ranges)
    else:
        adapter.unblock(connection, ranges)


def handle_auth_failure(
    engine: Engine,
    connection: dict[str, Any],
    reservation_id: str,
    error: Exception,
) -> None:
    """
    Disable a connection whose credential cannot be recovered and tell the owner.

    Only the call that flips the connection to "error" writes a notification.
    """
    with engine.begin() as conn:
        flipped = mark_connection_error(conn, connection["id"], str(error))
        if flipped:
            insert_owner_notification(
                conn,
                owner_id=connection["owner_id"],
                type="platform_auth_error",
                title="Marketplace Connection Needs Re-authorization",
                message=(
                    f"Calendar sync to {connection['platform']} stopped because its "
                    "credential expired and could not be refreshed. Reconnect the "
                    "marketplace and check its calendar for this reservation."
                ),
                data={
                    "connection_id": connection["id"],
                    "platform": connection["platform"],
                    "unit_id": connection["unit_id"],
                    "reservation_id": reservation_id,
                },
            )
    logger.error(
        "platform_connection_disabled",
        connection_id=connection["id"],
        platform=connection["platform"],
        reservation_id=reservation_id,
    )


def sync_reservation(
    engine: Engine,
    reservation_id: str,
    adapter_factory: AdapterFactory = get_adapter,
    now: Optional[datetime] = None,
) -> SyncSummary:
    """
    Push a reservation's current state to every active marketplace connection.

    Args:
        engine: SQLAlchemy engine
        reservation_id: Reservation that was just written
        adapter_factory: Builds the adapter for a platform name
        now: Override for the current time

    Returns:
        SyncSummary listing the connection ids that succeeded and failed
    """
    summary = SyncSummary(reservation_id=reservation_id)

    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            logger.warning("sync_reservation_missing", reservation_id=reservation_id)
            return summary

        summary.action = sync_action_for_status(reservation["status"])
        if summary.action is None:
            logger.info(
                "sync_skipped",
                reservation_id=reservation_id,
                status=reservation["status"],
                reason="cancellation does not reopen marketplace dates",
            )
            return summary

        connections = get_active_connections(conn, reservation["unit_id"])

    logger.info(
        "sync_started",
        reservation_id=reservation_id,
        action=summary.action,
        connections=len(connections),
    )

    for connection in connections:
        platform = connection["platform"]
        try:
            push_availability(engine, adapter_factory, connection, summary.action, reservation)
        except PlatformAuthError as e:
            platform_sync_total.labels(
                platform=platform, action=summary.action, status="failure"
            ).inc()
            summary.failed.append(connection["id"])
            handle_auth_failure(engine, connection, reservation_id, e)
        except Exception as e:
            platform_sync_total.labels(
                platform=platform, action=summary.action, status="failure"
            ).inc()
            summary.failed.append(connection["id"])
            if summary.action == BLOCK:
                _queue_retry(engine, connection, reservation, e, now)
            else:
                logger.exception(
                    "platform_unblock_failed",
                    reservation_id=reservation_id,
                    connection_id=connection["id"],
                    platform=platform,
                    error=str(e),
                )
        else:
            platform_sync_total.labels(
                platform=platform, action=summary.action, status="success"
            ).inc()
            summary.succeeded.append(connection["id"])
            with engine.begin() as conn:
                update_last_synced(conn, connection["id"], now or utc_now())

    logger.info(
        "sync_completed",
        reservation_id=reservation_id,
        action=summary.action,
        succeeded=len(summary.succeeded),
        failed=len(summary.failed),
    )
    return summary


def _queue_retry(
    engine: Engine,
    connection: dict[str, Any],
    reservation: dict[str, Any],
    error: Exception,
    now: Optional[datetime],
) -> None:
    next_retry_at = (now or utc_now()) + timedelta(seconds=SYNC_INITIAL_RETRY_DELAY_SECONDS)
    with engine.begin() as conn:
        failure_id = insert_sync_failure(
            conn,
            owner_id=reservation["owner_id"],
            unit_id=reservation["unit_id"],
            platform=connection["platform"],
            connection_id=connection["id"],
            reservation_id=reservation["id"],
            action=BLOCK,
            error=str(error),
            next_retry_at=next_retry_at,
        )
    sync_failures_recorded.labels(platform=connection["platform"]).inc()
    logger.warning(
        "platform_block_failed",
        reservation_id=reservation["id"],
        connection_id=connection["id"],
        platform=connection["platform"],
        failure_id=failure_id,
        next_retry_at=next_retry_at.isoformat(),
        error=str(error),
    )


class SyncDispatcher:
    """
    Runs sync_reservation() for committed writes on a small thread pool.

    submit() never raises; the pool is shut down with the application.

    Example:
        >>> dispatcher = SyncDispatcher(engine)
        >>> dispatcher.submit(reservation_id)
        >>> dispatcher.shutdown()
    """

    def __init__(
        self,
        engine: Engine,
        max_workers: int = SYNC_DISPATCH_WORKERS,
        adapter_factory: AdapterFactory = get_adapter,
    ):
        self.engine = engine
        self.adapter_factory = adapter_factory
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sync-dispatch"
        )

    def submit(self, reservation_id: str) -> Optional[Future]:
        try:
            return self._executor.submit(self._run, reservation_id)
        except RuntimeError as e:
            logger.error("sync_dispatch_rejected", reservation_id=reservation_id, error=str(e))
            return None

    def _run(self, reservation_id: str) -> Optional[SyncSummary]:
        try:
            return sync_reservation(
                self.engine, reservation_id, adapter_factory=self.adapter_factory
            )
        except Exception as e:
            logger.exception("sync_dispatch_failed", reservation_id=reservation_id, error=str(e))
            return None

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
