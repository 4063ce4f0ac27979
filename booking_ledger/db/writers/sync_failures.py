import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from booking_ledger.models.sync_failures import SyncFailure
from booking_ledger.utils.datetime import utc_now

sync_failures = SyncFailure.__table__


def insert_sync_failure(
    conn: Connection,
    *,
    owner_id: str,
    unit_id: str,
    platform: str,
    connection_id: Optional[str],
    reservation_id: str,
    action: str,
    error: str,
    next_retry_at: datetime,
) -> str:
    """
    Queue a failed outbound sync for retry.

    Returns:
        str: Id of the new failure record
    """
    failure_id = str(uuid.uuid4())
    now = utc_now()
    conn.execute(
        insert(sync_failures).values(
            id=failure_id,
            owner_id=owner_id,
            unit_id=unit_id,
            platform=platform,
            connection_id=connection_id,
            reservation_id=reservation_id,
            action=action,
            error=error,
            retry_count=0,
            next_retry_at=next_retry_at,
            created_at=now,
            updated_at=now,
        )
    )
    return failure_id


def record_retry_failure(
    conn: Connection,
    failure_id: str,
    expected_retry_count: int,
    error: str,
    next_retry_at: datetime,
) -> bool:
    """
    Bump the retry counter after another failed attempt.

    The update is conditional on the counter the caller read, so two
    schedulers racing on the same record cannot both advance it.

    Returns:
        bool: True if this call advanced the counter
    """
    result = conn.execute(
        update(sync_failures)
        .where(
            sync_failures.c.id == failure_id,
            sync_failures.c.retry_count == expected_retry_count,
        )
        .values(
            retry_count=expected_retry_count + 1,
            error=error,
            next_retry_at=next_retry_at,
            updated_at=utc_now(),
        )
    )
    return result.rowcount == 1


def delete_sync_failure(
    conn: Connection, failure_id: str, expected_retry_count: Optional[int] = None
) -> bool:
    """
    Remove a failure record.

    Args:
        conn: SQLAlchemy connection
        failure_id: Record id
        expected_retry_count: Only delete if the counter still has this value

    Returns:
        bool: True if a row was deleted
    """
    stmt = delete(sync_failures).where(sync_failures.c.id == failure_id)
    if expected_retry_count is not None:
        stmt = stmt.where(sync_failures.c.retry_count == expected_retry_count)
    return conn.execute(stmt).rowcount == 1
