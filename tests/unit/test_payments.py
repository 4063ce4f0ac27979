"""
Unit tests for the Stripe refund processor.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, Mock, patch

import pytest
import stripe

from booking_ledger.payments import RefundError, StripePaymentProcessor, to_cents


@pytest.mark.unit
@pytest.mark.parametrize(
    "amount, cents",
    [(Decimal("100.00"), 10000), (Decimal("0.01"), 1), (Decimal("12.345"), 1235)],
)
def test_to_cents(amount: Decimal, cents: int) -> None:
    """Test conversion of major units to integer cents."""
    assert to_cents(amount) == cents


@pytest.mark.unit
def test_processor_requires_key() -> None:
    """Test that a processor cannot be built without a secret key."""
    with patch("booking_ledger.payments.STRIPE_SECRET_KEY", None):
        with pytest.raises(RuntimeError, match="STRIPE_SECRET_KEY"):
            StripePaymentProcessor()


@pytest.mark.unit
@patch("booking_ledger.payments.stripe.StripeClient")
def test_refund_passes_idempotency_key(mock_client_cls: Mock) -> None:
    """
    Test that refunds are created in cents with the reservation's idempotency key.

    Args:
        mock_client_cls (Mock): Mocked StripeClient class.
    """
    client = MagicMock()
    client.v1.refunds.create.return_value = Mock(id="re_123", status="succeeded")
    mock_client_cls.return_value = client

    refund_id = StripePaymentProcessor(api_key="sk_test_123").refund(
        "pi_123", Decimal("150.00"), "refund:res-1"
    )

    assert refund_id == "re_123"
    mock_client_cls.assert_called_once_with("sk_test_123")
    client.v1.refunds.create.assert_called_once_with(
        params={"payment_intent": "pi_123", "amount": 15000},
        options={"idempotency_key": "refund:res-1"},
    )


@pytest.mark.unit
@patch("booking_ledger.payments.stripe.StripeClient")
def test_refund_error_is_wrapped(mock_client_cls: Mock) -> None:
    """Test that Stripe errors surface as RefundError."""
    client = MagicMock()
    client.v1.refunds.create.side_effect = stripe.InvalidRequestError(
        "Charge already refunded", param="payment_intent"
    )
    mock_client_cls.return_value = client

    with pytest.raises(RefundError, match="already refunded"):
        StripePaymentProcessor(api_key="sk_test_123").refund(
            "pi_123", Decimal("150.00"), "refund:res-1"
        )
