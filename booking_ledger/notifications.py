"""
Guest and owner messaging boundary.

Message content and delivery live outside the ledger. The ledger calls a
Notifier after a reservation commits or is cancelled; delivery failures are
logged and never affect the booking outcome.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

import structlog

from booking_ledger.logging_config import mask_email

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    def booking_received(self, reservation: dict[str, Any], access_token: str) -> None: ...

    def reservation_cancelled(self, reservation: dict[str, Any], refund_amount: Any) -> None: ...


class LoggingNotifier:
    """Notifier that only records what would have been sent."""

    def booking_received(self, reservation: dict[str, Any], access_token: str) -> None:
        logger.info(
            "notification_booking_received",
            reservation_id=reservation["id"],
            guest_email=mask_email(reservation.get("guest_email")),
        )

    def reservation_cancelled(self, reservation: dict[str, Any], refund_amount: Any) -> None:
        logger.info(
            "notification_reservation_cancelled",
            reservation_id=reservation["id"],
            guest_email=mask_email(reservation.get("guest_email")),
            refund_amount=str(refund_amount),
        )


def notify_safely(send: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """
    Call a notifier method, logging instead of raising on failure.

    Args:
        send: Bound notifier method
        *args: Positional arguments for the method
        **kwargs: Keyword arguments for the method
    """
    try:
        send(*args, **kwargs)
    except Exception as e:
        name = getattr(send, "__name__", "?")
        logger.exception("notification_failed", notification=name, error=str(e))
