from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_ledger.models.sync_failures import SyncFailure

sync_failures = SyncFailure.__table__


def get_due_sync_failures(
    conn: Connection, now: datetime, max_retries: int, limit: int
) -> list[dict[str, Any]]:
    """
    Fetch failure records ready for another attempt.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        now (datetime): Current UTC time.
        max_retries (int): Retry ceiling; records at or above it are skipped.
        limit (int): Maximum batch size.

    Returns:
        list[dict[str, Any]]: Due records, oldest next_retry_at first.
    """
    rows = (
        conn.execute(
            select(sync_failures)
            .where(
                sync_failures.c.next_retry_at <= now,
                sync_failures.c.retry_count < max_retries,
            )
            .order_by(sync_failures.c.next_retry_at, sync_failures.c.id)
            .limit(limit)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]


def get_sync_failures_for_reservation(
    conn: Connection, reservation_id: str
) -> list[dict[str, Any]]:
    """Fetch every queued failure record of a reservation."""
    rows = (
        conn.execute(
            select(sync_failures)
            .where(sync_failures.c.reservation_id == reservation_id)
            .order_by(sync_failures.c.created_at)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]
