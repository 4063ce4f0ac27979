"""Checkout sweep: move past stays to completed and release their marketplace dates."""

from __future__ import annotations

from datetime import date
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from booking_ledger.db.engine import run_serializable
from booking_ledger.db.readers.reservations import get_checked_out_reservations
from booking_ledger.db.writers.reservations import complete_reservations
from booking_ledger.metrics import reservations_completed
from booking_ledger.services.sync import SyncDispatcher
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def complete_checked_out_reservations(
    engine: Engine,
    dispatcher: Optional[SyncDispatcher] = None,
    today: Optional[date] = None,
    limit: int = 500,
) -> list[str]:
    """
    Complete pending/confirmed reservations whose checkout day has passed.

    Each completed reservation is handed to the dispatcher, which unblocks
    its dates on the connected marketplaces.

    Args:
        engine: SQLAlchemy engine
        dispatcher: Receives submit(reservation_id) for each completion
        today: Override for the current UTC day
        limit: Maximum reservations per sweep

    Returns:
        list[str]: Ids of the reservations completed by this sweep
    """
    current_day = today or utc_now().date()

    with engine.connect() as conn:
        candidates = get_checked_out_reservations(conn, current_day, limit)

    if not candidates:
        logger.info("completion_sweep_nothing_to_do", today=current_day.isoformat())
        return []

    candidate_ids = [r["id"] for r in candidates]
    completed = run_serializable(engine, lambda conn: complete_reservations(conn, candidate_ids))
    reservations_completed.inc(len(completed))

    logger.info(
        "completion_sweep_finished",
        today=current_day.isoformat(),
        candidates=len(candidate_ids),
        completed=len(completed),
    )

    if dispatcher is not None:
        for reservation_id in completed:
            dispatcher.submit(reservation_id)
    return completed
