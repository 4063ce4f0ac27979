"""
Public guest endpoints: book, cancel, and open a reservation with its access token.

BookingError subclasses raised by the services propagate to the application's
exception handler, which maps them to their HTTP status and error code.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.engine import Engine

from booking_ledger.db.readers.reservations import get_reservation
from booking_ledger.dependencies import (
    get_db_engine,
    get_notifier,
    get_payment_processor,
    get_rate_limiter,
    get_sync_dispatcher,
)
from booking_ledger.errors import BookingError
from booking_ledger.notifications import Notifier
from booking_ledger.payments import PaymentProcessor
from booking_ledger.schemas.reservations import (
    AccessPayload,
    CancellationPayload,
    CancellationResponse,
    ReservationCreatedResponse,
    ReservationCreatePayload,
    ReservationView,
)
from booking_ledger.security.access_tokens import is_token_expired, verify_token
from booking_ledger.security.rate_limit import RateLimiter
from booking_ledger.services.cancellation import cancel_by_guest
from booking_ledger.services.reservations import (
    GuestInfo,
    PaymentParams,
    ReservationRequest,
    create_reservation,
)
from booking_ledger.services.sync import SyncDispatcher

logger = structlog.get_logger(__name__)
router = APIRouter()

INVALID_ACCESS = "Invalid or expired access token"


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post(
    "/reservations",
    status_code=status.HTTP_201_CREATED,
    response_model=ReservationCreatedResponse,
)
def create_reservation_endpoint(
    payload: ReservationCreatePayload,
    engine: Engine = Depends(get_db_engine),
    notifier: Optional[Notifier] = Depends(get_notifier),
    dispatcher: Optional[SyncDispatcher] = Depends(get_sync_dispatcher),
) -> ReservationCreatedResponse:
    """
    Book a unit for a date range.

    Returns 409 when the dates are no longer available; the guest has to pick
    other dates rather than retry.

    Args:
        payload: Booking request
        engine: Database engine
        notifier: Confirmation sender
        dispatcher: Calendar sync dispatcher

    Returns:
        ReservationCreatedResponse including the one-time access token
    """
    try:
        created = create_reservation(
            engine,
            ReservationRequest(
                unit_id=payload.unit_id,
                property_id=payload.property_id,
                owner_id=payload.owner_id,
                guest=GuestInfo(
                    name=payload.guest.name,
                    email=payload.guest.email,
                    phone=payload.guest.phone,
                ),
                check_in=payload.check_in,
                check_out=payload.check_out,
                guest_count=payload.guest_count,
                payment=PaymentParams(
                    total_price=payload.total_price,
                    payment_option=payload.payment_option,
                    payment_method=payload.payment_method,
                    payment_reference=payload.payment_reference,
                ),
                notes=payload.notes,
            ),
            notifier=notifier,
            dispatcher=dispatcher,
        )
        return ReservationCreatedResponse(
            reservation_id=created.reservation_id,
            booking_reference=created.booking_reference,
            deposit_amount=created.deposit_amount,
            status=created.status,
            payment_status=created.payment_status,
            access_token=created.access_token,
            token_expires_at=created.token_expires_at,
        )

    except (HTTPException, BookingError):
        raise
    except Exception as e:
        logger.exception("reservation_endpoint_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/reservations/{reservation_id}/cancel", response_model=CancellationResponse)
def cancel_reservation_endpoint(
    reservation_id: str,
    payload: CancellationPayload,
    engine: Engine = Depends(get_db_engine),
    payment_processor: Optional[PaymentProcessor] = Depends(get_payment_processor),
    notifier: Optional[Notifier] = Depends(get_notifier),
) -> CancellationResponse:
    """
    Cancel a reservation as its guest. Safe to retry after a timeout.

    Args:
        reservation_id: Reservation to cancel
        payload: Booking reference and guest email

    Returns:
        CancellationResponse with the refund decision
    """
    try:
        result = cancel_by_guest(
            engine,
            reservation_id,
            payload.booking_reference,
            payload.email,
            payment_processor=payment_processor,
            notifier=notifier,
        )
        return CancellationResponse(
            reservation_id=result.reservation_id,
            refund_amount=result.refund_amount,
            refund_status=result.refund_status,
            already_cancelled=result.already_cancelled,
        )

    except (HTTPException, BookingError):
        raise
    except Exception as e:
        logger.exception(
            "cancellation_endpoint_failed", reservation_id=reservation_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/reservations/{reservation_id}/access", response_model=ReservationView)
def access_reservation_endpoint(
    reservation_id: str,
    payload: AccessPayload,
    request: Request,
    engine: Engine = Depends(get_db_engine),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ReservationView:
    """
    Open a reservation with the guest's access token.

    Unknown reservations, wrong tokens, expired tokens and rate-limited
    callers all get the same 401 response.

    Args:
        reservation_id: Reservation to open
        payload: Access token
        request: Used for the caller's address (rate limit key)

    Returns:
        ReservationView
    """
    try:
        with engine.connect() as conn:
            reservation = get_reservation(conn, reservation_id)

        stored_hash = reservation["access_token_hash"] if reservation else None
        valid = verify_token(payload.token, stored_hash, _client_id(request), limiter=limiter)
        if not valid or reservation is None or is_token_expired(reservation["token_expires_at"]):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_ACCESS)

        return ReservationView(
            reservation_id=reservation["id"],
            booking_reference=reservation["booking_reference"],
            status=reservation["status"],
            check_in=reservation["check_in"],
            check_out=reservation["check_out"],
            guest_name=reservation["guest_name"],
            guest_count=reservation["guest_count"],
            total_price=reservation["total_price"],
            deposit_amount=reservation["deposit_amount"],
            paid_amount=reservation["paid_amount"],
            payment_method=reservation["payment_method"],
            payment_status=reservation["payment_status"],
            refund_amount=reservation["refund_amount"],
            refund_status=reservation["refund_status"],
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("access_endpoint_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
