"""
Marketplace adapter abstraction.

An adapter pushes availability for one unit to one marketplace and reads
reservations back. All adapters share credential handling: the access token
comes from the in-memory cache, else from the connection row (decrypted), and
is refreshed transparently when it is within the refresh margin of expiry or
when the marketplace rejects it. A credential that has expired and cannot be
refreshed raises PlatformAuthError, which callers treat as terminal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

import structlog
from sqlalchemy.engine import Engine

from booking_ledger.cache import CredentialCache, credential_cache
from booking_ledger.config import CREDENTIAL_REFRESH_MARGIN_SECONDS
from booking_ledger.db.writers.platform_connections import update_connection_credential
from booking_ledger.metrics import credential_refreshes
from booking_ledger.security.crypto import decrypt_secret, encrypt_secret
from booking_ledger.utils.datetime import ensure_utc, utc_now

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PlatformError(Exception):
    """A marketplace call failed. Worth retrying later."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PlatformUnauthorizedError(PlatformError):
    """The marketplace rejected the access token."""


class PlatformAuthError(PlatformError):
    """The credential is unusable until the owner re-authorizes. Not retryable."""


@dataclass(frozen=True)
class DateRange:
    """Calendar range pushed to a marketplace, from check-in to checkout day."""

    start: date
    end: date

    def to_payload(self) -> dict[str, str]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


def date_ranges_for(check_in: date, check_out: date) -> list[DateRange]:
    return [DateRange(start=check_in, end=check_out)]


@dataclass(frozen=True)
class IssuedCredential:
    access_token: str
    expires_at: Optional[datetime]
    refresh_token: Optional[str] = None


class PlatformAdapter(ABC):
    """
    Base class for marketplace adapters.

    Subclasses implement the raw API calls; this class supplies credential
    resolution, refresh and the one-shot retry after a rejected token.

    Attributes:
        platform: Marketplace name stored on platform connections
        requires_refresh_token: Whether a new credential can only be obtained
            with the connection's refresh token
    """

    platform: str = ""
    requires_refresh_token: bool = True

    def __init__(
        self,
        engine: Engine,
        cache: Optional[CredentialCache] = None,
        refresh_margin_seconds: int = CREDENTIAL_REFRESH_MARGIN_SECONDS,
    ):
        self.engine = engine
        self.cache = cache if cache is not None else credential_cache
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)

    # -- public operations -------------------------------------------------

    def block(self, connection: dict[str, Any], ranges: list[DateRange]) -> None:
        """Mark the ranges unavailable on the marketplace."""
        self._authorized(
            connection, lambda token: self._set_availability(token, connection, ranges, False)
        )
        logger.info(
            "platform_dates_blocked",
            platform=self.platform,
            connection_id=connection["id"],
            range_count=len(ranges),
        )

    def unblock(self, connection: dict[str, Any], ranges: list[DateRange]) -> None:
        """Mark the ranges available again."""
        self._authorized(
            connection, lambda token: self._set_availability(token, connection, ranges, True)
        )
        logger.info(
            "platform_dates_unblocked",
            platform=self.platform,
            connection_id=connection["id"],
            range_count=len(ranges),
        )

    def list_reservations(self, connection: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch the marketplace's reservations for the connected unit."""
        return self._authorized(
            connection, lambda token: self._fetch_reservations(token, connection)
        )

    def refresh_credential(self, connection: dict[str, Any]) -> str:
        """
        Obtain and store a new access token for the connection.

        Args:
            connection: Platform connection row (updated in place)

        Returns:
            str: The new access token

        Raises:
            PlatformAuthError: If no refresh secret is available or the
                marketplace refused the refresh
        """
        connection_id = connection["id"]
        self.cache.invalidate(connection_id)

        refresh_token: Optional[str] = None
        if connection.get("encrypted_refresh_token"):
            refresh_token = decrypt_secret(connection["encrypted_refresh_token"])
        elif self.requires_refresh_token:
            credential_refreshes.labels(platform=self.platform, status="unavailable").inc()
            raise PlatformAuthError("Token expired and no refresh token available")

        try:
            issued = self._issue_credential(refresh_token)
        except PlatformError as e:
            credential_refreshes.labels(platform=self.platform, status="failure").inc()
            if isinstance(e, PlatformUnauthorizedError) or (
                e.status_code is not None and 400 <= e.status_code < 500
            ):
                raise PlatformAuthError(f"Credential refresh rejected: {e}") from e
            raise

        encrypted_access = encrypt_secret(issued.access_token)
        encrypted_refresh = encrypt_secret(issued.refresh_token) if issued.refresh_token else None
        with self.engine.begin() as conn:
            update_connection_credential(
                conn,
                connection_id,
                encrypted_access_token=encrypted_access,
                credential_expires_at=issued.expires_at,
                encrypted_refresh_token=encrypted_refresh,
            )

        connection["encrypted_access_token"] = encrypted_access
        connection["credential_expires_at"] = issued.expires_at
        if encrypted_refresh:
            connection["encrypted_refresh_token"] = encrypted_refresh

        self.cache.set(connection_id, issued.access_token, self._cache_limit(issued.expires_at))
        credential_refreshes.labels(platform=self.platform, status="success").inc()
        logger.info(
            "platform_credential_refreshed", platform=self.platform, connection_id=connection_id
        )
        return issued.access_token

    def get_access_token(self, connection: dict[str, Any]) -> str:
        """
        Return a usable access token, refreshing it when close to expiry.

        Raises:
            PlatformAuthError: If the credential expired and cannot be refreshed
        """
        connection_id = connection["id"]
        cached = self.cache.get(connection_id)
        if cached:
            return cached

        now = utc_now()
        expires_at = ensure_utc(connection.get("credential_expires_at"))
        if expires_at is not None and expires_at <= now + self.refresh_margin:
            can_refresh = bool(connection.get("encrypted_refresh_token")) or (
                not self.requires_refresh_token
            )
            if can_refresh or expires_at <= now:
                logger.info(
                    "platform_credential_near_expiry",
                    platform=self.platform,
                    connection_id=connection_id,
                )
                return self.refresh_credential(connection)

        token = decrypt_secret(connection["encrypted_access_token"])
        self.cache.set(connection_id, token, self._cache_limit(expires_at))
        return token

    # -- helpers -----------------------------------------------------------

    def _authorized(self, connection: dict[str, Any], call: Callable[[str], T]) -> T:
        token = self.get_access_token(connection)
        try:
            return call(token)
        except PlatformUnauthorizedError:
            logger.warning(
                "platform_token_rejected", platform=self.platform, connection_id=connection["id"]
            )
            token = self.refresh_credential(connection)
            try:
                return call(token)
            except PlatformUnauthorizedError as e:
                raise PlatformAuthError(f"{self.platform} rejected a freshly issued token") from e

    def _cache_limit(self, expires_at: Optional[datetime]) -> Optional[datetime]:
        expiry = ensure_utc(expires_at)
        return expiry - self.refresh_margin if expiry is not None else None

    # -- marketplace specifics ---------------------------------------------

    @abstractmethod
    def _set_availability(
        self,
        token: str,
        connection: dict[str, Any],
        ranges: list[DateRange],
        available: bool,
    ) -> None: ...

    @abstractmethod
    def _fetch_reservations(
        self, token: str, connection: dict[str, Any]
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _issue_credential(self, refresh_token: Optional[str]) -> IssuedCredential: ...
