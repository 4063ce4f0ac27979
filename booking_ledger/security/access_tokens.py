"""
Guest access tokens.

A guest manages a reservation without an account by presenting the secret
token handed out when the reservation was created. The token is 32 random
bytes encoded URL-safe without padding (43 characters); the ledger stores
only its SHA-256 hex digest.

Verification never says why a token was refused. Every rejection path logs
the same event and returns False.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import structlog

from booking_ledger.config import (
    ACCESS_TOKEN_BYTES,
    ACCESS_TOKEN_LENGTH,
    TOKEN_EXPIRATION_DAYS,
    TOKEN_EXTENDED_EXPIRATION_DAYS,
)
from booking_ledger.metrics import token_verifications
from booking_ledger.security.rate_limit import TOKEN_VERIFY, RateLimiter, rate_limiter
from booking_ledger.utils.datetime import ensure_utc, start_of_day_utc, utc_now

logger = structlog.get_logger(__name__)

_TOKEN_PATTERN = re.compile(rf"[A-Za-z0-9_-]{{{ACCESS_TOKEN_LENGTH}}}")
_HASH_PATTERN = re.compile(r"[0-9a-f]{64}")


@dataclass(frozen=True)
class GeneratedToken:
    plaintext: str
    token_hash: str


def hash_token(plaintext: str) -> str:
    """Return the lowercase SHA-256 hex digest of a token."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def generate_token() -> GeneratedToken:
    """
    Generate a new guest access token.

    Returns:
        GeneratedToken with the 43-character plaintext (to hand to the guest
        once) and its 64-character hash (to persist)
    """
    raw = secrets.token_bytes(ACCESS_TOKEN_BYTES)
    plaintext = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return GeneratedToken(plaintext=plaintext, token_hash=hash_token(plaintext))


def compute_expiry(check_out: date, now: Optional[datetime] = None) -> datetime:
    """
    Compute when a reservation's access token stops working.

    Tokens for stays that have not ended yet expire 30 days after checkout.
    Tokens issued for a stay that is already over (historical imports) keep
    working for ten years so the guest can still reach their records.

    Args:
        check_out: Checkout date of the reservation
        now: Issuance time, defaults to the current UTC time

    Returns:
        Timezone-aware UTC expiry

    Example:
        >>> compute_expiry(date(2030, 1, 10), now=ensure_utc(datetime(2030, 1, 5)))
        datetime.datetime(2030, 2, 9, 0, 0, tzinfo=datetime.timezone.utc)
    """
    issued_at = ensure_utc(now) or utc_now()
    checkout_at = start_of_day_utc(check_out)
    if checkout_at > issued_at:
        return checkout_at + timedelta(days=TOKEN_EXPIRATION_DAYS)
    return checkout_at + timedelta(days=TOKEN_EXTENDED_EXPIRATION_DAYS)


def is_token_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Return True if the expiry has passed (or is missing)."""
    expiry = ensure_utc(expires_at)
    if expiry is None:
        return True
    return expiry <= (ensure_utc(now) or utc_now())


def verify_token(
    provided: object,
    stored_hash: object,
    client_id: str,
    limiter: Optional[RateLimiter] = None,
) -> bool:
    """
    Check a guest-supplied token against the stored hash.

    Checks run in a fixed order: the caller's rate limit (fails closed), the
    shape of the supplied token (before any hashing), the shape of the stored
    hash, then a constant-time comparison of the digests.

    Args:
        provided: Token presented by the guest
        stored_hash: access_token_hash of the reservation
        client_id: Identifier the rate limit is keyed on (client IP)
        limiter: Limiter override, defaults to the process-wide limiter

    Returns:
        bool: True only if every check passes. Never raises.
    """
    try:
        active_limiter = limiter if limiter is not None else rate_limiter
        if not active_limiter.hit(TOKEN_VERIFY, client_id):
            return _reject()

        if not isinstance(provided, str) or not _TOKEN_PATTERN.fullmatch(provided):
            return _reject()

        if not isinstance(stored_hash, str) or not _HASH_PATTERN.fullmatch(stored_hash):
            return _reject()

        provided_digest = hashlib.sha256(provided.encode("ascii")).digest()
        if not hmac.compare_digest(provided_digest, bytes.fromhex(stored_hash)):
            return _reject()
    except Exception:
        return _reject()

    token_verifications.labels(result="valid").inc()
    return True


def _reject() -> bool:
    token_verifications.labels(result="invalid").inc()
    logger.warning("access_token_verification_failed")
    return False
