"""
In-memory sliding-window rate limiter.

One limiter instance covers every throttled operation. Calls are keyed by
``(operation, identifier)``, e.g. ``("token_verify", "203.0.113.7")``, and
each operation has its own ceiling and window. The limiter only protects
against abuse; no correctness property depends on it.

For deployments with several API instances the counters are per-process.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

import structlog

from booking_ledger.config import (
    RATE_LIMIT_MAX_KEYS,
    TOKEN_VERIFY_MAX_CALLS,
    TOKEN_VERIFY_WINDOW_SECONDS,
)
from booking_ledger.errors import ResourceExhaustedError
from booking_ledger.metrics import rate_limited_calls

logger = structlog.get_logger(__name__)

TOKEN_VERIFY = "token_verify"


@dataclass(frozen=True)
class RateLimitRule:
    max_calls: int
    window_seconds: float


class RateLimiter:
    """
    Thread-safe sliding-window limiter keyed by (operation, identifier).

    Attributes:
        rules: Ceiling and window per operation name
        max_keys: Upper bound on tracked keys; the least recently used key is
            evicted when it is reached

    Example:
        >>> limiter = RateLimiter({"token_verify": RateLimitRule(10, 60)})
        >>> limiter.hit("token_verify", "203.0.113.7")
        True
    """

    def __init__(
        self,
        rules: Dict[str, RateLimitRule],
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10000,
    ):
        self.rules = dict(rules)
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: "OrderedDict[Tuple[str, str], Deque[float]]" = OrderedDict()

    def hit(self, operation: str, identifier: str) -> bool:
        """
        Record one call and report whether it is within the ceiling.

        Refused calls are not recorded, so a client that backs off regains
        access once its oldest call leaves the window. Operations without a
        rule are always allowed.

        Args:
            operation: Name of the throttled operation
            identifier: Caller identity (client IP, email, ...)

        Returns:
            True if the call is allowed, False if the ceiling is exceeded
        """
        rule = self.rules.get(operation)
        if rule is None:
            return True

        key = (operation, identifier)
        now = self._clock()
        cutoff = now - rule.window_seconds

        with self._lock:
            calls = self._calls.get(key)
            if calls is None:
                calls = deque()
                self._calls[key] = calls
                self._evict_if_full()
            else:
                self._calls.move_to_end(key)

            while calls and calls[0] <= cutoff:
                calls.popleft()

            if len(calls) >= rule.max_calls:
                allowed = False
            else:
                calls.append(now)
                allowed = True

        if not allowed:
            rate_limited_calls.labels(operation=operation).inc()
        return allowed

    def enforce(self, operation: str, identifier: str) -> None:
        """
        Like hit(), but raise instead of returning False.

        Raises:
            ResourceExhaustedError: If the ceiling is exceeded
        """
        if not self.hit(operation, identifier):
            logger.warning("rate_limit_exceeded", operation=operation)
            raise ResourceExhaustedError()

    def reset(self, operation: Optional[str] = None) -> None:
        """Forget recorded calls, for one operation or all of them."""
        with self._lock:
            if operation is None:
                self._calls.clear()
                return
            for key in [k for k in self._calls if k[0] == operation]:
                del self._calls[key]

    def size(self) -> int:
        """Number of (operation, identifier) keys currently tracked."""
        return len(self._calls)

    def _evict_if_full(self) -> None:
        while len(self._calls) > self.max_keys:
            self._calls.popitem(last=False)


# Global limiter instance shared by every request handler in the process
rate_limiter = RateLimiter(
    {TOKEN_VERIFY: RateLimitRule(TOKEN_VERIFY_MAX_CALLS, TOKEN_VERIFY_WINDOW_SECONDS)},
    max_keys=RATE_LIMIT_MAX_KEYS,
)
