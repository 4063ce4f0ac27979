"""
Unit tests for guest access token generation, expiry and verification.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

import pytest

from booking_ledger.security.access_tokens import (
    compute_expiry,
    generate_token,
    hash_token,
    is_token_expired,
    verify_token,
)
from booking_ledger.security.rate_limit import TOKEN_VERIFY, RateLimiter, RateLimitRule


@pytest.fixture
def limiter() -> RateLimiter:
    """Limiter generous enough not to interfere with shape checks."""
    return RateLimiter({TOKEN_VERIFY: RateLimitRule(100, 60)})


@pytest.mark.unit
def test_generate_token_shape() -> None:
    """Test that tokens are 43 URL-safe characters with a 64-char hex hash."""
    token = generate_token()

    assert re.fullmatch(r"[A-Za-z0-9_-]{43}", token.plaintext)
    assert re.fullmatch(r"[0-9a-f]{64}", token.token_hash)
    assert token.token_hash == hash_token(token.plaintext)


@pytest.mark.unit
def test_generate_token_is_random() -> None:
    """Test that two generated tokens differ."""
    assert generate_token().plaintext != generate_token().plaintext


@pytest.mark.unit
def test_verify_token_accepts_matching_token(limiter: RateLimiter) -> None:
    """Test that the issued token verifies against its stored hash."""
    token = generate_token()

    assert verify_token(token.plaintext, token.token_hash, "203.0.113.7", limiter=limiter)


@pytest.mark.unit
def test_verify_token_rejects_other_token(limiter: RateLimiter) -> None:
    """Test that a well-formed but different token is refused."""
    token = generate_token()
    other = generate_token()

    assert not verify_token(other.plaintext, token.token_hash, "203.0.113.7", limiter=limiter)


@pytest.mark.unit
@pytest.mark.parametrize(
    "provided",
    [
        None,
        12345,
        "",
        "short",
        "A" * 42,
        "A" * 44,
        "A" * 42 + "=",
        "A" * 42 + "+",
        "A" * 42 + "/",
    ],
)
def test_verify_token_rejects_malformed_input(provided: object, limiter: RateLimiter) -> None:
    """Test that malformed tokens are refused without raising."""
    token = generate_token()

    assert verify_token(provided, token.token_hash, "203.0.113.7", limiter=limiter) is False


@pytest.mark.unit
@pytest.mark.parametrize("stored_hash", [None, "", "abc", "G" * 64, "A" * 64])
def test_verify_token_rejects_malformed_stored_hash(
    stored_hash: object, limiter: RateLimiter
) -> None:
    """Test that a missing or malformed stored hash never verifies."""
    token = generate_token()

    assert verify_token(token.plaintext, stored_hash, "203.0.113.7", limiter=limiter) is False


@pytest.mark.unit
def test_verify_token_fails_closed_when_rate_limited() -> None:
    """Test that a correct token is refused once the caller exceeds the limit."""
    limiter = RateLimiter({TOKEN_VERIFY: RateLimitRule(2, 60)})
    token = generate_token()

    assert verify_token(token.plaintext, token.token_hash, "198.51.100.1", limiter=limiter)
    assert verify_token(token.plaintext, token.token_hash, "198.51.100.1", limiter=limiter)
    assert not verify_token(token.plaintext, token.token_hash, "198.51.100.1", limiter=limiter)

    # Other callers are unaffected
    assert verify_token(token.plaintext, token.token_hash, "198.51.100.2", limiter=limiter)


@pytest.mark.unit
def test_compute_expiry_for_upcoming_stay() -> None:
    """Test that tokens for future stays expire 30 days after checkout."""
    issued_at = datetime(2030, 1, 5, 12, 0, tzinfo=timezone.utc)

    expiry = compute_expiry(date(2030, 1, 10), now=issued_at)

    assert expiry == datetime(2030, 2, 9, tzinfo=timezone.utc)


@pytest.mark.unit
def test_compute_expiry_for_past_stay() -> None:
    """Test that tokens for finished stays get the ten-year extended expiry."""
    issued_at = datetime(2030, 1, 5, 12, 0, tzinfo=timezone.utc)

    expiry = compute_expiry(date(2029, 12, 1), now=issued_at)

    assert expiry == datetime(2029, 12, 1, tzinfo=timezone.utc) + timedelta(days=3650)


@pytest.mark.unit
def test_compute_expiry_accepts_naive_issue_time() -> None:
    """Test that a naive issuance time is read as UTC."""
    expiry = compute_expiry(date(2030, 1, 10), now=datetime(2030, 1, 5))

    assert expiry == datetime(2030, 2, 9, tzinfo=timezone.utc)


@pytest.mark.unit
def test_is_token_expired() -> None:
    """Test expiry comparison, including naive datetimes read back from SQLite."""
    now = datetime(2030, 1, 5, tzinfo=timezone.utc)

    assert is_token_expired(datetime(2030, 1, 4), now=now)
    assert is_token_expired(now, now=now)
    assert not is_token_expired(datetime(2030, 1, 6, tzinfo=timezone.utc), now=now)
    assert is_token_expired(None, now=now)
