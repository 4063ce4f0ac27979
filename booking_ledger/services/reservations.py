"""
Reservation creation.

create_reservation() validates a booking request, then checks the unit's
calendar and writes the reservation in one serializable transaction. Two
concurrent requests for overlapping dates cannot both commit: the loser
re-reads after its serialization failure, sees the winner and gets a
ConflictError. Confirmation messages and the calendar sync are only
triggered after the commit.
"""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from booking_ledger.config import (
    DEFAULT_DEPOSIT_PERCENTAGE,
    DEFAULT_MAX_GUESTS,
    DEFAULT_MIN_STAY_NIGHTS,
    DEFAULT_PAYMENT_DEADLINE_DAYS,
    STRIPE_PAYMENT_HOLD_MINUTES,
)
from booking_ledger.db.engine import run_serializable
from booking_ledger.db.readers.reservations import find_conflicting_reservations
from booking_ledger.db.readers.units import get_unit_settings
from booking_ledger.db.writers.reservations import insert_reservation
from booking_ledger.errors import (
    BookingError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    normalize_errors,
)
from booking_ledger.logging_config import mask_email
from booking_ledger.metrics import (
    reservation_conflicts,
    reservation_rejections,
    reservations_created,
)
from booking_ledger.notifications import Notifier, notify_safely
from booking_ledger.security.access_tokens import compute_expiry, generate_token
from booking_ledger.services.sync import SyncDispatcher
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

PAYMENT_OPTIONS = ("full", "deposit", "none")
PAYMENT_METHODS = ("stripe", "bank_transfer", "none")

_METHOD_LABELS = {
    "stripe": "Stripe payment",
    "bank_transfer": "Bank transfer",
    "none": "Pay on arrival",
}

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class GuestInfo:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class PaymentParams:
    total_price: Decimal
    payment_option: str
    payment_method: str
    payment_reference: Optional[str] = None


@dataclass(frozen=True)
class ReservationRequest:
    unit_id: str
    property_id: str
    owner_id: str
    guest: GuestInfo
    check_in: date
    check_out: date
    guest_count: int
    payment: PaymentParams
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReservationCreated:
    reservation_id: str
    booking_reference: str
    deposit_amount: Decimal
    status: str
    payment_status: str
    access_token: str
    token_expires_at: datetime


def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def calculate_deposit(total_price: Decimal, payment_option: str, percentage: Any) -> Decimal:
    """
    Amount the guest pays up front.

    Args:
        total_price: Total price of the stay
        payment_option: full, deposit or none
        percentage: Deposit percentage of the chosen payment method

    Returns:
        Decimal: full price, the percentage rounded to cents, or zero

    Example:
        >>> calculate_deposit(Decimal("500"), "deposit", 20)
        Decimal('100.00')
    """
    if payment_option == "full":
        return round2(Decimal(total_price))
    if payment_option == "deposit":
        return round2(Decimal(total_price) * Decimal(str(percentage)) / Decimal(100))
    return Decimal("0.00")


def resolve_status(payment_method: str, require_owner_approval: bool) -> tuple[str, str]:
    """
    Initial (status, payment_status) of a new reservation.

    Every reservation starts pending. Nothing is collected when the owner
    must approve first or the guest pays on arrival; card and bank transfer
    payments are awaited and confirmed by a later payment event.
    """
    if require_owner_approval or payment_method == "none":
        return "pending", "not_required"
    return "pending", "pending"


def compute_payment_deadline(
    payment_method: str,
    payment_status: str,
    method_config: dict[str, Any],
    now: datetime,
) -> Optional[datetime]:
    """
    When an unpaid reservation stops holding its dates.

    Bank transfers get the unit's payment_deadline_days (default 3 days).
    Card bookings only hold while checkout is in progress. Reservations with
    nothing to collect have no deadline.

    Example:
        >>> compute_payment_deadline("none", "not_required", {}, utc_now()) is None
        True
    """
    if payment_status != "pending":
        return None
    if payment_method == "bank_transfer":
        days = method_config.get("payment_deadline_days")
        if days is None:
            days = DEFAULT_PAYMENT_DEADLINE_DAYS
        return now + timedelta(days=int(days))
    if payment_method == "stripe":
        return now + timedelta(minutes=STRIPE_PAYMENT_HOLD_MINUTES)
    return None


def generate_booking_reference() -> str:
    """Display label of the form ``BK-<epoch-ms>-<0..9999>``. Not unique by construction."""
    return f"BK-{int(time.time() * 1000)}-{secrets.randbelow(10000)}"


def validate_request(request: ReservationRequest, today: date) -> None:
    """
    Check a booking request before touching the ledger.

    Raises:
        InvalidArgumentError: Describing the first problem found
    """
    for field_name in ("unit_id", "property_id", "owner_id"):
        if not getattr(request, field_name):
            raise InvalidArgumentError(f"Missing required field: {field_name}")

    guest = request.guest
    if not guest or not (guest.name or "").strip():
        raise InvalidArgumentError("Guest name is required")
    if not guest.email or "@" not in guest.email:
        raise InvalidArgumentError("A valid guest email is required")

    if not isinstance(request.check_in, date) or not isinstance(request.check_out, date):
        raise InvalidArgumentError("Check-in and check-out dates are required")
    if request.check_in >= request.check_out:
        raise InvalidArgumentError("Check-out must be after check-in")
    if request.check_in < today:
        raise InvalidArgumentError("Check-in date cannot be in the past")

    if request.guest_count is None or request.guest_count < 1:
        raise InvalidArgumentError("At least one guest is required")

    payment = request.payment
    try:
        total = Decimal(payment.total_price)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgumentError("Total price must be a number")
    if not total.is_finite() or total <= 0:
        raise InvalidArgumentError("Total price must be greater than zero")
    if payment.payment_option not in PAYMENT_OPTIONS:
        raise InvalidArgumentError(f"Unknown payment option: {payment.payment_option}")
    if payment.payment_method not in PAYMENT_METHODS:
        raise InvalidArgumentError(f"Unknown payment method: {payment.payment_method}")


def _check_unit_rules(request: ReservationRequest, settings: dict[str, Any]) -> dict[str, Any]:
    if settings["property_id"] != request.property_id or settings["owner_id"] != request.owner_id:
        raise InvalidArgumentError("Unit does not belong to the given property")

    method = request.payment.payment_method
    method_config = (settings.get("payment_methods") or {}).get(method) or {}
    if not method_config.get("enabled"):
        raise PermissionDeniedError(
            f"{_METHOD_LABELS[method]} not enabled. Select another payment method."
        )

    max_guests = settings.get("max_guests") or DEFAULT_MAX_GUESTS
    if request.guest_count > max_guests:
        raise InvalidArgumentError(f"Maximum {max_guests} guests allowed")

    min_stay = settings.get("min_stay_nights") or DEFAULT_MIN_STAY_NIGHTS
    nights = (request.check_out - request.check_in).days
    if nights < min_stay:
        raise InvalidArgumentError(f"Minimum stay is {min_stay} nights")

    return method_config


def create_reservation(
    engine: Engine,
    request: ReservationRequest,
    notifier: Optional[Notifier] = None,
    dispatcher: Optional[SyncDispatcher] = None,
    today: Optional[date] = None,
) -> ReservationCreated:
    """
    Create a reservation if the unit is free for the requested dates.

    Args:
        engine: SQLAlchemy engine
        request: Validated-on-entry booking request
        notifier: Receives booking_received() after commit
        dispatcher: Receives submit(reservation_id) after commit
        today: Override for the current UTC day

    Returns:
        ReservationCreated, including the plaintext access token. The token
        is not stored and cannot be recovered later.

    Raises:
        InvalidArgumentError: Bad input
        NotFoundError: Unknown unit
        PermissionDeniedError: Payment method disabled for the unit
        ConflictError: Dates overlap an active reservation
        InternalError: Anything else; safe to retry verbatim
    """
    with normalize_errors("create_reservation", unit_id=request.unit_id):
        try:
            validate_request(request, today or utc_now().date())
            row = run_serializable(engine, lambda conn: _create_in_transaction(conn, request))
        except ConflictError:
            reservation_conflicts.inc()
            logger.info(
                "reservation_conflict",
                unit_id=request.unit_id,
                check_in=request.check_in.isoformat(),
                check_out=request.check_out.isoformat(),
            )
            raise
        except BookingError as e:
            reservation_rejections.labels(code=e.code).inc()
            logger.info(
                "reservation_rejected", unit_id=request.unit_id, code=e.code, reason=e.message
            )
            raise

    reservations_created.labels(payment_method=row["payment_method"]).inc()
    logger.info(
        "reservation_created",
        reservation_id=row["id"],
        booking_reference=row["booking_reference"],
        unit_id=row["unit_id"],
        guest_email=mask_email(row["guest_email"]),
        status=row["status"],
        payment_status=row["payment_status"],
    )

    if notifier is not None:
        notify_safely(notifier.booking_received, row, row["_access_token"])
    if dispatcher is not None:
        dispatcher.submit(row["id"])

    return ReservationCreated(
        reservation_id=row["id"],
        booking_reference=row["booking_reference"],
        deposit_amount=row["deposit_amount"],
        status=row["status"],
        payment_status=row["payment_status"],
        access_token=row["_access_token"],
        token_expires_at=row["token_expires_at"],
    )


def _create_in_transaction(conn: Connection, request: ReservationRequest) -> dict[str, Any]:
    settings = get_unit_settings(conn, request.unit_id)
    if settings is None:
        raise NotFoundError("Unit not found")
    method_config = _check_unit_rules(request, settings)

    if find_conflicting_reservations(conn, request.unit_id, request.check_in, request.check_out):
        raise ConflictError()

    payment = request.payment
    total = round2(Decimal(payment.total_price))
    percentage = method_config.get("deposit_percentage")
    if percentage is None:
        percentage = DEFAULT_DEPOSIT_PERCENTAGE
    status, payment_status = resolve_status(
        payment.payment_method, bool(settings.get("require_owner_approval"))
    )
    token = generate_token()

    row: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "unit_id": request.unit_id,
        "property_id": request.property_id,
        "owner_id": request.owner_id,
        "guest_name": request.guest.name.strip(),
        "guest_email": request.guest.email.strip(),
        "guest_phone": request.guest.phone,
        "guest_count": request.guest_count,
        "check_in": request.check_in,
        "check_out": request.check_out,
        "total_price": total,
        "deposit_amount": calculate_deposit(total, payment.payment_option, percentage),
        "paid_amount": Decimal("0.00"),
        "payment_option": payment.payment_option,
        "payment_method": payment.payment_method,
        "payment_status": payment_status,
        "payment_reference": payment.payment_reference,
        "payment_deadline": compute_payment_deadline(
            payment.payment_method, payment_status, method_config, utc_now()
        ),
        "require_owner_approval": bool(settings.get("require_owner_approval")),
        "status": status,
        "booking_reference": generate_booking_reference(),
        "access_token_hash": token.token_hash,
        "token_expires_at": compute_expiry(request.check_out),
        "notes": request.notes,
    }
    insert_reservation(conn, row)
    return {**row, "_access_token": token.plaintext}
