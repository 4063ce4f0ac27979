"""
Retry scheduler for failed outbound calendar pushes.

Failure records live in the sync_failures table, so the queue survives
restarts. Each pass picks the records that are due, retries them one at a
time with a short pause between items to stay polite toward marketplace rate
limits, and either clears, reschedules or escalates each one.

Backoff after the n-th failed retry is ``SYNC_BACKOFF_BASE ** n`` units,
capped at SYNC_MAX_BACKOFF_SECONDS. When the retry count reaches
SYNC_MAX_RETRIES the record is deleted and the owner receives exactly one
notification. The delete is conditional on the retry count the pass read,
so two schedulers racing on the same record cannot notify twice.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.engine import Engine

from booking_ledger.config import (
    SYNC_BACKOFF_BASE,
    SYNC_BACKOFF_UNIT_SECONDS,
    SYNC_MAX_BACKOFF_SECONDS,
    SYNC_MAX_RETRIES,
    SYNC_RETRY_BATCH_SIZE,
    SYNC_RETRY_INTERVAL_SECONDS,
    SYNC_RETRY_ITEM_DELAY_SECONDS,
)
from booking_ledger.db.readers.platform_connections import get_active_connection, get_connection
from booking_ledger.db.readers.reservations import get_reservation
from booking_ledger.db.readers.sync_failures import get_due_sync_failures
from booking_ledger.db.writers.owner_notifications import insert_owner_notification
from booking_ledger.db.writers.platform_connections import update_last_synced
from booking_ledger.db.writers.sync_failures import delete_sync_failure, record_retry_failure
from booking_ledger.metrics import (
    retry_pass_duration,
    sync_failures_pending,
    sync_retries,
    sync_retries_exhausted,
)
from booking_ledger.models.reservations import ACTIVE_STATUSES
from booking_ledger.platforms.base import PlatformAuthError
from booking_ledger.platforms.registry import AdapterFactory, get_adapter
from booking_ledger.services.sync import BLOCK, handle_auth_failure, push_availability
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class RetrySummary:
    processed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    exhausted: int = 0
    discarded: int = 0


def compute_backoff(retry_count: int) -> timedelta:
    """
    Delay before the next attempt of a record that has failed retry_count retries.

    Example:
        >>> compute_backoff(1), compute_backoff(3)
        (datetime.timedelta(seconds=120), datetime.timedelta(seconds=480))
    """
    seconds = (SYNC_BACKOFF_BASE**retry_count) * SYNC_BACKOFF_UNIT_SECONDS
    return timedelta(seconds=min(seconds, SYNC_MAX_BACKOFF_SECONDS))


def process_due_failures(
    engine: Engine,
    adapter_factory: AdapterFactory = get_adapter,
    now: Optional[datetime] = None,
    batch_size: int = SYNC_RETRY_BATCH_SIZE,
    item_delay: float = SYNC_RETRY_ITEM_DELAY_SECONDS,
    max_retries: int = SYNC_MAX_RETRIES,
    sleep: Callable[[float], Any] = time.sleep,
) -> RetrySummary:
    """
    Run one retry pass over due sync failure records.

    Args:
        engine: SQLAlchemy engine
        adapter_factory: Builds the adapter for a platform name
        now: Override for the current time (selection and rescheduling)
        batch_size: Maximum records handled in this pass
        item_delay: Pause between two records, in seconds
        max_retries: Retry ceiling
        sleep: Sleep function, replaceable in tests

    Returns:
        RetrySummary with per-outcome counts
    """
    summary = RetrySummary()
    start_time = time.time()

    with engine.connect() as conn:
        due = get_due_sync_failures(conn, now or utc_now(), max_retries, batch_size)

    sync_failures_pending.set(len(due))
    logger.info("sync_retry_pass_started", due=len(due))

    for index, record in enumerate(due):
        if index > 0 and item_delay > 0:
            sleep(item_delay)
        summary.processed += 1
        try:
            outcome = _retry_record(engine, adapter_factory, record, now, max_retries)
        except Exception as e:
            logger.exception("sync_retry_record_failed", failure_id=record["id"], error=str(e))
            continue
        setattr(summary, outcome, getattr(summary, outcome) + 1)

    retry_pass_duration.observe(time.time() - start_time)
    logger.info(
        "sync_retry_pass_completed",
        processed=summary.processed,
        succeeded=summary.succeeded,
        rescheduled=summary.rescheduled,
        exhausted=summary.exhausted,
        discarded=summary.discarded,
    )
    return summary


def _retry_record(
    engine: Engine,
    adapter_factory: AdapterFactory,
    record: dict[str, Any],
    now: Optional[datetime],
    max_retries: int,
) -> str:
    failure_id = record["id"]
    platform = record["platform"]

    with engine.connect() as conn:
        reservation = get_reservation(conn, record["reservation_id"])
        connection = None
        if record.get("connection_id"):
            connection = get_connection(conn, record["connection_id"])
        if connection is None:
            connection = get_active_connection(conn, record["unit_id"], platform)

    if reservation is None or reservation["status"] not in ACTIVE_STATUSES:
        return _discard(engine, record, "reservation_inactive")
    if connection is None or connection["status"] != "active":
        return _discard(engine, record, "connection_inactive")

    try:
        action = record["action"] or BLOCK
        push_availability(engine, adapter_factory, connection, action, reservation)
    except PlatformAuthError as e:
        sync_retries.labels(platform=platform, status="auth_error").inc()
        handle_auth_failure(engine, connection, reservation["id"], e)
        return _discard(engine, record, "connection_unauthorized")
    except Exception as e:
        sync_retries.labels(platform=platform, status="failure").inc()
        return _reschedule_or_escalate(engine, record, reservation, str(e), now, max_retries)

    sync_retries.labels(platform=platform, status="success").inc()
    with engine.begin() as conn:
        delete_sync_failure(conn, failure_id)
        update_last_synced(conn, connection["id"], now or utc_now())
    logger.info(
        "sync_retry_succeeded",
        failure_id=failure_id,
        reservation_id=reservation["id"],
        platform=platform,
        retry_count=record["retry_count"],
    )
    return "succeeded"


def _reschedule_or_escalate(
    engine: Engine,
    record: dict[str, Any],
    reservation: dict[str, Any],
    error: str,
    now: Optional[datetime],
    max_retries: int,
) -> str:
    retry_count = record["retry_count"]
    new_count = retry_count + 1

    if new_count >= max_retries:
        with engine.begin() as conn:
            if not delete_sync_failure(conn, record["id"], expected_retry_count=retry_count):
                logger.info("sync_retry_already_handled", failure_id=record["id"])
                return "discarded"
            insert_owner_notification(
                conn,
                owner_id=record["owner_id"],
                type="sync_failure",
                title="Sync Failure - Manual Action Required",
                message=(
                    f"Reservation {reservation['booking_reference']} "
                    f"({reservation['check_in'].isoformat()} to "
                    f"{reservation['check_out'].isoformat()}) could not be blocked on "
                    f"{record['platform']} after {new_count} attempts. Block these dates "
                    "manually to avoid a double booking."
                ),
                data={
                    "reservation_id": reservation["id"],
                    "unit_id": record["unit_id"],
                    "platform": record["platform"],
                    "retry_count": new_count,
                    "last_error": error,
                },
            )
        sync_retries_exhausted.labels(platform=record["platform"]).inc()
        logger.error(
            "sync_retries_exhausted",
            failure_id=record["id"],
            reservation_id=reservation["id"],
            platform=record["platform"],
            retry_count=new_count,
        )
        return "exhausted"

    next_retry_at = (now or utc_now()) + compute_backoff(new_count)
    with engine.begin() as conn:
        advanced = record_retry_failure(conn, record["id"], retry_count, error, next_retry_at)
    if not advanced:
        logger.info("sync_retry_already_handled", failure_id=record["id"])
        return "discarded"

    logger.warning(
        "sync_retry_rescheduled",
        failure_id=record["id"],
        reservation_id=reservation["id"],
        platform=record["platform"],
        retry_count=new_count,
        next_retry_at=next_retry_at.isoformat(),
        error=error,
    )
    return "rescheduled"


def _discard(engine: Engine, record: dict[str, Any], reason: str) -> str:
    with engine.begin() as conn:
        delete_sync_failure(conn, record["id"])
    logger.info(
        "sync_failure_discarded",
        failure_id=record["id"],
        reservation_id=record["reservation_id"],
        reason=reason,
    )
    return "discarded"


class RetryScheduler:
    """
    APScheduler job running process_due_failures() on a fixed interval.

    One pass at a time: a pass still running when the next tick fires is
    skipped, and missed ticks collapse into a single run.

    Example:
        >>> scheduler = RetryScheduler(engine)
        >>> scheduler.start()
        >>> scheduler.stop()
    """

    JOB_ID = "sync_retry_pass"

    def __init__(
        self,
        engine: Engine,
        interval_seconds: float = SYNC_RETRY_INTERVAL_SECONDS,
        adapter_factory: AdapterFactory = get_adapter,
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.adapter_factory = adapter_factory
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="Sync retry pass",
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("retry_scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self, wait: bool = True) -> None:
        if self.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("retry_scheduler_stopped")
        self._scheduler = None

    def run_once(self) -> Optional[RetrySummary]:
        """Run a single pass, logging instead of raising on failure."""
        try:
            return process_due_failures(self.engine, adapter_factory=self.adapter_factory)
        except Exception as e:
            logger.exception("sync_retry_pass_failed", error=str(e))
            return None
