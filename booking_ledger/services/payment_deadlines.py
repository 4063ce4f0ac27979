"""
Payment deadline sweep: release reservations that were never paid.

Card and bank transfer bookings start pending and hold their dates until the
payment arrives. Once payment_deadline has passed without payment the sweep
cancels them as the system, records an owner notification in the same
transaction and tells the guest. Marketplace dates blocked for the booking
stay blocked, like any other cancellation; the owner notification says so.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_ledger.db.engine import run_serializable
from booking_ledger.db.readers.reservations import get_overdue_unpaid_reservations
from booking_ledger.db.writers.owner_notifications import insert_owner_notification
from booking_ledger.db.writers.reservations import expire_unpaid_reservations
from booking_ledger.metrics import reservations_expired
from booking_ledger.notifications import Notifier, notify_safely
from booking_ledger.utils.datetime import ensure_utc, utc_now

logger = structlog.get_logger(__name__)

CANCELLED_BY_SYSTEM = "system"
PAYMENT_DEADLINE_REASON = "Payment not received within deadline."


def _expire_in_transaction(
    conn: Connection, candidates: list[dict[str, Any]], now: datetime
) -> list[str]:
    expired = expire_unpaid_reservations(
        conn,
        [r["id"] for r in candidates],
        now=now,
        cancelled_by=CANCELLED_BY_SYSTEM,
        reason=PAYMENT_DEADLINE_REASON,
    )
    expired_ids = set(expired)
    for reservation in candidates:
        if reservation["id"] not in expired_ids:
            continue
        insert_owner_notification(
            conn,
            owner_id=reservation["owner_id"],
            type="reservation_expired",
            title="Booking Cancelled - Payment Not Received",
            message=(
                f"Reservation {reservation['booking_reference']} for "
                f"{reservation['guest_name']} ({reservation['check_in'].isoformat()} to "
                f"{reservation['check_out'].isoformat()}) was cancelled because the "
                f"{reservation['payment_method']} payment did not arrive in time. Dates "
                "blocked on connected marketplaces were not released."
            ),
            data={
                "reservation_id": reservation["id"],
                "unit_id": reservation["unit_id"],
                "payment_method": reservation["payment_method"],
            },
        )
    return expired


def cancel_overdue_unpaid_reservations(
    engine: Engine,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
    limit: int = 500,
) -> list[str]:
    """
    Cancel pending reservations whose payment deadline passed without payment.

    Args:
        engine: SQLAlchemy engine
        notifier: Receives reservation_cancelled() for each released booking
        now: Override for the current time
        limit: Maximum reservations per sweep

    Returns:
        list[str]: Ids of the reservations cancelled by this sweep
    """
    current_time = ensure_utc(now) or utc_now()

    with engine.connect() as conn:
        candidates = get_overdue_unpaid_reservations(conn, current_time, limit)

    if not candidates:
        logger.info("payment_deadline_sweep_nothing_to_do", now=current_time.isoformat())
        return []

    expired = run_serializable(
        engine, lambda conn: _expire_in_transaction(conn, candidates, current_time)
    )

    expired_ids = set(expired)
    for reservation in candidates:
        if reservation["id"] not in expired_ids:
            continue
        reservations_expired.labels(payment_method=reservation["payment_method"]).inc()
        logger.info(
            "reservation_payment_deadline_passed",
            reservation_id=reservation["id"],
            unit_id=reservation["unit_id"],
            payment_method=reservation["payment_method"],
        )
        if notifier is not None:
            cancelled = {
                **reservation,
                "status": "cancelled",
                "cancelled_by": CANCELLED_BY_SYSTEM,
                "cancellation_reason": PAYMENT_DEADLINE_REASON,
            }
            notify_safely(notifier.reservation_cancelled, cancelled, Decimal("0.00"))

    logger.info(
        "payment_deadline_sweep_finished",
        candidates=len(candidates),
        expired=len(expired),
    )
    return expired
