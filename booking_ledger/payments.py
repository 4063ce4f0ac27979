"""
Payment processor boundary used for post-cancellation refunds.

The ledger only needs one operation from a processor: refund a captured
payment. Refunds always carry an idempotency key derived from the
reservation, so a replayed call never refunds twice.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Protocol

import stripe
import structlog

from booking_ledger.config import STRIPE_SECRET_KEY

logger = structlog.get_logger(__name__)


class RefundError(Exception):
    """The processor did not accept the refund."""


class PaymentProcessor(Protocol):
    def refund(self, payment_reference: str, amount: Decimal, idempotency_key: str) -> str:
        """Refund ``amount`` of a captured payment and return the refund id."""
        ...


def refund_idempotency_key(reservation_id: str) -> str:
    return f"refund:{reservation_id}"


def to_cents(amount: Decimal) -> int:
    """Convert a decimal amount to integer minor units."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentProcessor:
    """
    Refunds through the Stripe API.

    Usage:
        processor = StripePaymentProcessor()  # reads STRIPE_SECRET_KEY
        refund_id = processor.refund("pi_123", Decimal("100.00"), "refund:abc")
    """

    def __init__(self, api_key: Optional[str] = None) -> None:
        """
        Initialize the processor.

        Args:
            api_key: Stripe secret key. Defaults to the STRIPE_SECRET_KEY setting.

        Raises:
            RuntimeError: If no API key is provided or configured.
        """
        self._api_key = api_key or STRIPE_SECRET_KEY
        if not self._api_key:
            raise RuntimeError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )

    def refund(self, payment_reference: str, amount: Decimal, idempotency_key: str) -> str:
        """
        Refund a PaymentIntent.

        Args:
            payment_reference: Stripe PaymentIntent id
            amount: Amount to refund in major units
            idempotency_key: Key making the call safe to replay

        Returns:
            str: Stripe refund id

        Raises:
            RefundError: If Stripe rejects the refund or cannot be reached
        """
        client = stripe.StripeClient(self._api_key)
        params: dict[str, Any] = {
            "payment_intent": payment_reference,
            "amount": to_cents(amount),
        }
        try:
            refund = client.v1.refunds.create(
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise RefundError(str(e)) from e

        # Log only IDs, never the full payload
        logger.info("stripe_refund_created", refund_id=refund.id, status=refund.status)
        return str(refund.id)
