"""
Error taxonomy for ledger operations.

Every failure a caller can observe from create_reservation(), cancel_by_guest() or
the access endpoint is one of the BookingError subclasses below. Each carries
a stable string code and the HTTP status the API maps it to. Unexpected
exceptions are converted to InternalError at the service boundary by
normalize_errors(); the original exception is logged, never returned.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog

logger = structlog.get_logger(__name__)


class BookingError(Exception):
    """Base class for errors surfaced to ledger callers."""

    code = "internal"
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidArgumentError(BookingError):
    """Input failed validation. Fix and resubmit."""

    code = "invalid-argument"
    status_code = 400
    default_message = "Invalid request"


class PermissionDeniedError(BookingError):
    """Caller is not allowed to perform the operation."""

    code = "permission-denied"
    status_code = 403
    default_message = "Permission denied"


class NotFoundError(BookingError):
    code = "not-found"
    status_code = 404
    default_message = "Not found"


class ConflictError(BookingError):
    """Requested dates overlap an active reservation on the same unit."""

    code = "already-exists"
    status_code = 409
    default_message = "Dates no longer available. Select different dates."


class FailedPreconditionError(BookingError):
    """Reservation is in the wrong state or a deadline has passed."""

    code = "failed-precondition"
    status_code = 412
    default_message = "Operation not allowed in the current state"


class ResourceExhaustedError(BookingError):
    """Rate limit exceeded. Back off before retrying."""

    code = "resource-exhausted"
    status_code = 429
    default_message = "Too many requests. Try again later."


class InternalError(BookingError):
    """Unexpected failure. Safe to retry verbatim."""


@contextmanager
def normalize_errors(operation: str, **context: Any) -> Iterator[None]:
    """
    Re-raise any non-domain exception as InternalError.

    BookingError subclasses pass through untouched. Anything else is logged
    with its traceback under ``<operation>_failed`` and replaced by a generic
    InternalError so implementation details never reach the caller.

    Args:
        operation: Name of the operation, used as the log event prefix
        **context: Extra structured context for the log line

    Example:
        >>> with normalize_errors("create_reservation", unit_id=unit_id):
        ...     do_work()
    """
    try:
        yield
    except BookingError:
        raise
    except Exception as e:
        logger.exception(f"{operation}_failed", error=str(e), **context)
        raise InternalError() from e
