"""
Unit tests for the ledger error taxonomy.
"""

from __future__ import annotations

import pytest

from booking_ledger.errors import (
    BookingError,
    ConflictError,
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    ResourceExhaustedError,
    normalize_errors,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "error_cls, code, status_code",
    [
        (InvalidArgumentError, "invalid-argument", 400),
        (PermissionDeniedError, "permission-denied", 403),
        (NotFoundError, "not-found", 404),
        (ConflictError, "already-exists", 409),
        (FailedPreconditionError, "failed-precondition", 412),
        (ResourceExhaustedError, "resource-exhausted", 429),
        (InternalError, "internal", 500),
    ],
)
def test_error_codes(error_cls: type[BookingError], code: str, status_code: int) -> None:
    """Test that each error carries its stable code and HTTP status."""
    error = error_cls("details")

    assert error.code == code
    assert error.status_code == status_code
    assert error.to_dict() == {"code": code, "message": "details"}


@pytest.mark.unit
def test_default_messages() -> None:
    """Test that errors raised without a message still carry one."""
    assert ConflictError().message
    assert InternalError().message


@pytest.mark.unit
def test_normalize_errors_passes_domain_errors_through() -> None:
    """Test that BookingError subclasses are re-raised unchanged."""
    with pytest.raises(ConflictError):
        with normalize_errors("create_reservation"):
            raise ConflictError()


@pytest.mark.unit
def test_normalize_errors_hides_unexpected_exceptions() -> None:
    """Test that other exceptions become a generic InternalError."""
    with pytest.raises(InternalError) as exc_info:
        with normalize_errors("create_reservation", unit_id="unit-1"):
            raise KeyError("password=hunter2")

    assert "hunter2" not in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, KeyError)
