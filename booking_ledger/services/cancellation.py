"""
Guest self-service cancellation.

A guest proves ownership of a reservation by presenting its booking
reference and email, no account needed. The status change and the refund
decision are written in one serializable transaction that re-reads both the
unit's cancellation policy and the reservation, so repeated or concurrent
calls converge on the outcome of whichever call committed first.

The external refund runs after the commit. If it fails the cancellation
stands and the reservation is flagged (refund_status = "failed") for manual
follow-up: releasing the dates matters more than a perfectly synchronized
refund state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from booking_ledger.config import DEFAULT_CANCELLATION_DEADLINE_HOURS
from booking_ledger.db.engine import run_serializable
from booking_ledger.db.readers.reservations import get_reservation
from booking_ledger.db.readers.units import get_unit_settings
from booking_ledger.db.writers.reservations import mark_reservation_cancelled, update_refund_status
from booking_ledger.errors import (
    BookingError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    normalize_errors,
)
from booking_ledger.metrics import cancellations, refunds
from booking_ledger.models.reservations import ACTIVE_STATUSES
from booking_ledger.notifications import Notifier, notify_safely
from booking_ledger.payments import PaymentProcessor, refund_idempotency_key
from booking_ledger.utils.datetime import ensure_utc, start_of_day_utc, utc_now

logger = structlog.get_logger(__name__)

CANCELLED_BY_GUEST = "guest"
GUEST_CANCELLATION_REASON = "Guest cancellation via booking widget"

# Refund status values
REFUND_NOT_REQUIRED = "not_required"
REFUND_PENDING_EXTERNAL = "pending_external_refund"
REFUND_PENDING_MANUAL = "pending_manual_refund"
REFUND_COMPLETED = "refunded"
REFUND_FAILED = "failed"

# Methods whose payments can be refunded through the payment processor
EXTERNAL_REFUND_METHODS = ("stripe",)


@dataclass(frozen=True)
class CancellationResult:
    reservation_id: str
    refund_amount: Decimal
    refund_status: str
    already_cancelled: bool = False


def calculate_refund(reservation: dict[str, Any], hours_before_check_in: float) -> Decimal:
    """
    Amount returned to the guest on cancellation.

    Full-refund policy: whatever was paid comes back. hours_before_check_in
    is the hook for a notice-based partial refund schedule.
    """
    if reservation.get("payment_status") != "paid":
        return Decimal("0.00")
    return Decimal(reservation.get("paid_amount") or 0).quantize(Decimal("0.01"))


def refund_status_for(payment_method: str, refund_amount: Decimal) -> str:
    if refund_amount <= 0:
        return REFUND_NOT_REQUIRED
    if payment_method in EXTERNAL_REFUND_METHODS:
        return REFUND_PENDING_EXTERNAL
    return REFUND_PENDING_MANUAL


def hours_until_check_in(reservation: dict[str, Any], now: datetime) -> float:
    return (start_of_day_utc(reservation["check_in"]) - now) / timedelta(hours=1)


def cancel_by_guest(
    engine: Engine,
    reservation_id: str,
    booking_reference: str,
    guest_email: str,
    payment_processor: Optional[PaymentProcessor] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> CancellationResult:
    """
    Cancel a reservation on behalf of its guest.

    Safe to call again after a timeout: once the reservation is cancelled,
    further calls return the recorded refund amount and status without
    side effects.

    Args:
        engine: SQLAlchemy engine
        reservation_id: Reservation to cancel
        booking_reference: Reference the guest received (exact match)
        guest_email: Guest email (case-insensitive match)
        payment_processor: Used for card refunds after commit
        notifier: Receives reservation_cancelled() after commit
        now: Override for the current time

    Returns:
        CancellationResult

    Raises:
        InvalidArgumentError: Missing input
        NotFoundError: Unknown reservation
        PermissionDeniedError: Reference/email mismatch or guest cancellation disabled
        FailedPreconditionError: Wrong status or deadline passed
        InternalError: Anything else
    """
    current_time = ensure_utc(now) or utc_now()

    with normalize_errors("cancel_by_guest", reservation_id=reservation_id):
        try:
            _authorize(engine, reservation_id, booking_reference, guest_email)
            result, reservation = run_serializable(
                engine, lambda conn: _cancel_in_transaction(conn, reservation_id, current_time)
            )
        except BookingError as e:
            cancellations.labels(outcome="rejected").inc()
            logger.info(
                "guest_cancellation_rejected",
                reservation_id=reservation_id,
                code=e.code,
                reason=e.message,
            )
            raise

    if result.already_cancelled:
        cancellations.labels(outcome="replayed").inc()
        logger.info(
            "guest_cancellation_replayed",
            reservation_id=reservation_id,
            refund_status=result.refund_status,
        )
        return result

    cancellations.labels(outcome="cancelled").inc()
    logger.info(
        "guest_cancellation_committed",
        reservation_id=reservation_id,
        refund_amount=str(result.refund_amount),
        refund_status=result.refund_status,
    )

    if result.refund_status == REFUND_PENDING_EXTERNAL:
        result = _execute_refund(engine, reservation, result, payment_processor)

    if notifier is not None:
        notify_safely(notifier.reservation_cancelled, reservation, result.refund_amount)

    return result


def _authorize(
    engine: Engine, reservation_id: str, booking_reference: str, guest_email: str
) -> None:
    if not reservation_id or not booking_reference or not guest_email:
        raise InvalidArgumentError("Reservation id, booking reference and email are required")

    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)

    if reservation is None:
        raise NotFoundError("Reservation not found")

    email_matches = (reservation["guest_email"] or "").strip().casefold() == (
        guest_email.strip().casefold()
    )
    if reservation["booking_reference"] != booking_reference or not email_matches:
        raise PermissionDeniedError("Booking reference or email does not match")

    if reservation["status"] not in ACTIVE_STATUSES and reservation["status"] != "cancelled":
        raise FailedPreconditionError(
            f"Reservation cannot be cancelled (status: {reservation['status']})"
        )


def _recorded_outcome(reservation: dict[str, Any]) -> CancellationResult:
    return CancellationResult(
        reservation_id=reservation["id"],
        refund_amount=Decimal(reservation.get("refund_amount") or 0).quantize(Decimal("0.01")),
        refund_status=reservation.get("refund_status") or REFUND_NOT_REQUIRED,
        already_cancelled=True,
    )


def _cancel_in_transaction(
    conn: Connection, reservation_id: str, now: datetime
) -> tuple[CancellationResult, dict[str, Any]]:
    reservation = get_reservation(conn, reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation not found")

    settings = get_unit_settings(conn, reservation["unit_id"])

    if reservation["status"] == "cancelled":
        return _recorded_outcome(reservation), reservation
    if reservation["status"] not in ACTIVE_STATUSES:
        raise FailedPreconditionError(
            f"Reservation cannot be cancelled (status: {reservation['status']})"
        )

    if settings is None:
        raise NotFoundError("Unit settings not found")
    if not settings.get("allow_guest_cancellation"):
        raise PermissionDeniedError(
            "Guest cancellation is not allowed for this property. Please contact the owner."
        )

    deadline_hours = settings.get("cancellation_deadline_hours")
    if deadline_hours is None:
        deadline_hours = DEFAULT_CANCELLATION_DEADLINE_HOURS
    hours_left = hours_until_check_in(reservation, now)
    if hours_left < deadline_hours:
        raise FailedPreconditionError(
            f"Cancellation deadline has passed. Reservations can only be cancelled "
            f"at least {deadline_hours} hours before check-in. Please contact the owner."
        )

    refund_amount = calculate_refund(reservation, hours_left)
    refund_status = refund_status_for(reservation["payment_method"], refund_amount)

    if not mark_reservation_cancelled(
        conn,
        reservation_id,
        cancelled_at=now,
        cancelled_by=CANCELLED_BY_GUEST,
        reason=GUEST_CANCELLATION_REASON,
        refund_amount=refund_amount,
        refund_status=refund_status,
    ):
        fresh = get_reservation(conn, reservation_id) or reservation
        return _recorded_outcome(fresh), fresh

    reservation = {
        **reservation,
        "status": "cancelled",
        "cancelled_at": now,
        "cancelled_by": CANCELLED_BY_GUEST,
        "cancellation_reason": GUEST_CANCELLATION_REASON,
        "refund_amount": refund_amount,
        "refund_status": refund_status,
    }
    result = CancellationResult(
        reservation_id=reservation_id,
        refund_amount=refund_amount,
        refund_status=refund_status,
    )
    return result, reservation


def _execute_refund(
    engine: Engine,
    reservation: dict[str, Any],
    result: CancellationResult,
    payment_processor: Optional[PaymentProcessor],
) -> CancellationResult:
    reservation_id = reservation["id"]
    payment_reference = reservation.get("payment_reference")
    refund_id: Optional[str] = None
    final_status = REFUND_FAILED

    if payment_processor is None or not payment_reference:
        logger.error(
            "refund_not_executable",
            reservation_id=reservation_id,
            has_processor=payment_processor is not None,
            has_payment_reference=bool(payment_reference),
        )
    else:
        try:
            refund_id = payment_processor.refund(
                payment_reference,
                result.refund_amount,
                refund_idempotency_key(reservation_id),
            )
            final_status = REFUND_COMPLETED
        except Exception as e:
            logger.exception("refund_failed", reservation_id=reservation_id, error=str(e))

    # The cancellation is already committed; a failed write here leaves the
    # row at pending_external_refund for manual reconciliation.
    try:
        with engine.begin() as conn:
            update_refund_status(
                conn,
                reservation_id,
                final_status,
                refund_id=refund_id,
                expected_status=REFUND_PENDING_EXTERNAL,
            )
    except SQLAlchemyError as e:
        logger.exception(
            "refund_status_write_failed",
            reservation_id=reservation_id,
            refund_status=final_status,
            refund_id=refund_id,
            error=str(e),
        )

    refunds.labels(status=final_status).inc()
    logger.info(
        "refund_recorded",
        reservation_id=reservation_id,
        refund_status=final_status,
        refund_id=refund_id,
    )
    return CancellationResult(
        reservation_id=reservation_id,
        refund_amount=result.refund_amount,
        refund_status=final_status,
    )
