from datetime import datetime
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from booking_ledger.models.reservations import ACTIVE_STATUSES, Reservation
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

reservations = Reservation.__table__


def insert_reservation(conn: Connection, row: dict[str, Any]) -> None:
    """
    Insert a fully-formed reservation row.

    Must be called in the same transaction as the conflict check that
    cleared the dates.

    Args:
        conn: Transactional connection
        row: Column values, including id, booking_reference and access_token_hash
    """
    now = utc_now()
    values = {"created_at": now, "updated_at": now, **row}
    conn.execute(insert(reservations).values(**values))
    logger.debug("reservation_inserted", reservation_id=row["id"], unit_id=row["unit_id"])


def mark_reservation_cancelled(
    conn: Connection,
    reservation_id: str,
    *,
    cancelled_at: datetime,
    cancelled_by: str,
    reason: str,
    refund_amount: Any,
    refund_status: str,
) -> bool:
    """
    Move an active reservation to cancelled and record the refund decision.

    The update only matches rows still pending or confirmed, so a concurrent
    cancellation that already committed makes this a no-op.

    Returns:
        bool: True if the row was updated
    """
    result = conn.execute(
        update(reservations)
        .where(
            reservations.c.id == reservation_id,
            reservations.c.status.in_(ACTIVE_STATUSES),
        )
        .values(
            status="cancelled",
            cancelled_at=cancelled_at,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
            refund_amount=refund_amount,
            refund_status=refund_status,
            updated_at=cancelled_at,
        )
    )
    return result.rowcount == 1


def update_refund_status(
    conn: Connection,
    reservation_id: str,
    refund_status: str,
    refund_id: Optional[str] = None,
    expected_status: Optional[str] = None,
) -> bool:
    """
    Record the outcome of the external refund call.

    Args:
        conn: Transactional connection
        reservation_id: Reservation id
        refund_status: New refund status (refunded, failed)
        refund_id: Processor refund id, when one was issued
        expected_status: Only update if the current refund_status matches

    Returns:
        bool: True if the row was updated
    """
    stmt = update(reservations).where(reservations.c.id == reservation_id)
    if expected_status is not None:
        stmt = stmt.where(reservations.c.refund_status == expected_status)
    values: dict[str, Any] = {"refund_status": refund_status, "updated_at": utc_now()}
    if refund_id is not None:
        values["refund_id"] = refund_id
    result = conn.execute(stmt.values(**values))
    return result.rowcount == 1


def complete_reservations(conn: Connection, reservation_ids: Iterable[str]) -> list[str]:
    """
    Move active reservations to completed.

    Returns:
        list[str]: Ids that actually transitioned
    """
    completed: list[str] = []
    now = utc_now()
    for reservation_id in reservation_ids:
        result = conn.execute(
            update(reservations)
            .where(
                reservations.c.id == reservation_id,
                reservations.c.status.in_(ACTIVE_STATUSES),
            )
            .values(status="completed", updated_at=now)
        )
        if result.rowcount == 1:
            completed.append(reservation_id)
    return completed


def expire_unpaid_reservations(
    conn: Connection,
    reservation_ids: Iterable[str],
    *,
    now: datetime,
    cancelled_by: str,
    reason: str,
) -> list[str]:
    """
    Cancel pending reservations whose payment deadline has passed.

    Each update re-checks status, payment_status and the deadline, so a
    payment recorded after the sweep read its candidates keeps the booking.

    Returns:
        list[str]: Ids that actually transitioned
    """
    expired: list[str] = []
    for reservation_id in reservation_ids:
        result = conn.execute(
            update(reservations)
            .where(
                reservations.c.id == reservation_id,
                reservations.c.status == "pending",
                reservations.c.payment_status == "pending",
                reservations.c.payment_deadline < now,
            )
            .values(
                status="cancelled",
                cancelled_at=now,
                cancelled_by=cancelled_by,
                cancellation_reason=reason,
                refund_amount=0,
                refund_status="not_required",
                updated_at=now,
            )
        )
        if result.rowcount == 1:
            expired.append(reservation_id)
    return expired
