"""
In-memory cache of decrypted marketplace access tokens.

Each outbound sync would otherwise read and decrypt the connection's
credential. Entries live for a fixed TTL but never past the point where the
credential enters its refresh window, so a cached token is always one the
marketplace still accepts.

For distributed deployments with multiple instances, consider migrating to Redis.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional

from booking_ledger.config import CREDENTIAL_CACHE_TTL_SECONDS
from booking_ledger.metrics import credential_cache_hits, credential_cache_misses
from booking_ledger.utils.datetime import ensure_utc, utc_now


class CredentialCache:
    """
    Thread-safe access token cache keyed by platform connection id.

    Attributes:
        ttl: Maximum lifetime of an entry
        _cache: connection_id -> (token, cache expiry)

    Example:
        >>> cache = CredentialCache(ttl_seconds=3600)
        >>> cache.set("conn-1", "token-abc")
        >>> cache.get("conn-1")
        'token-abc'
        >>> cache.invalidate("conn-1")
    """

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, connection_id: str) -> Optional[str]:
        """
        Get a cached token if its entry has not expired.

        Args:
            connection_id: Platform connection id

        Returns:
            Cached token, or None
        """
        with self._lock:
            entry = self._cache.get(connection_id)
            if entry is not None:
                token, expires_at = entry
                if utc_now() < expires_at:
                    credential_cache_hits.inc()
                    return token
                del self._cache[connection_id]
        credential_cache_misses.inc()
        return None

    def set(
        self,
        connection_id: str,
        token: str,
        valid_until: Optional[datetime] = None,
    ) -> None:
        """
        Cache a token.

        Args:
            connection_id: Platform connection id
            token: Decrypted access token
            valid_until: Latest time the entry may be served (start of the
                credential's refresh window); the TTL applies otherwise
        """
        expires_at = utc_now() + self.ttl
        limit = ensure_utc(valid_until)
        if limit is not None and limit < expires_at:
            expires_at = limit
        with self._lock:
            self._cache[connection_id] = (token, expires_at)

    def invalidate(self, connection_id: str) -> None:
        """Drop a connection's entry, e.g. after the marketplace rejected it."""
        with self._lock:
            self._cache.pop(connection_id, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)


# Global cache instance shared by all adapters in the process
credential_cache = CredentialCache(ttl_seconds=CREDENTIAL_CACHE_TTL_SECONDS)
