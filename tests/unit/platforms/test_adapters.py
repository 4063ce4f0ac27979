"""
Unit tests for marketplace adapters and their shared credential handling.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from booking_ledger.cache import CredentialCache
from booking_ledger.platforms.airbnb import AirbnbAdapter
from booking_ledger.platforms.base import DateRange, PlatformAuthError
from booking_ledger.platforms.booking_com import BookingComAdapter
from booking_ledger.platforms.registry import get_adapter
from booking_ledger.security.crypto import decrypt_secret, encrypt_secret
from booking_ledger.utils.datetime import utc_now

RANGES = [DateRange(start=date(2030, 7, 10), end=date(2030, 7, 15))]


def make_response(status_code: int, payload: Optional[dict[str, Any]] = None) -> Mock:
    res = Mock(status_code=status_code)
    res.content = b"{}" if payload is not None else b""
    res.json.return_value = payload
    if status_code >= 400:
        res.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return res


def make_connection(platform: str = "airbnb", **overrides: Any) -> dict[str, Any]:
    return {
        "id": "conn-1",
        "owner_id": "owner-1",
        "unit_id": "unit-1",
        "platform": platform,
        "external_property_id": "hotel-77",
        "external_unit_id": "listing-42",
        "encrypted_access_token": encrypt_secret("old-token"),
        "encrypted_refresh_token": encrypt_secret("refresh-1"),
        "credential_expires_at": utc_now() + timedelta(days=1),
        "status": "active",
        **overrides,
    }


@pytest.fixture
def airbnb() -> AirbnbAdapter:
    return AirbnbAdapter(MagicMock(), cache=CredentialCache())


@pytest.fixture
def booking_com() -> BookingComAdapter:
    return BookingComAdapter(MagicMock(), cache=CredentialCache())


@pytest.mark.unit
@patch("booking_ledger.platforms.http.requests.request")
def test_booking_com_block_puts_availability(
    mock_request: Mock, booking_com: BookingComAdapter
) -> None:
    """
    Test that blocking sends the date range as unavailable for the room type.

    Args:
        mock_request (Mock): Mocked requests.request call.
        booking_com (BookingComAdapter): Adapter under test.
    """
    mock_request.return_value = make_response(200, {"ok": True})

    booking_com.block(make_connection("booking_com"), RANGES)

    args, kwargs = mock_request.call_args
    assert args[0] == "PUT"
    assert args[1].endswith("/hotels/hotel-77/room-types/listing-42/availability")
    assert kwargs["json"] == {
        "start_date": "2030-07-10",
        "end_date": "2030-07-15",
        "available": False,
    }
    assert kwargs["headers"]["Authorization"] == "Bearer old-token"


@pytest.mark.unit
@patch("booking_ledger.platforms.http.requests.request")
def test_airbnb_unblock_puts_calendar(mock_request: Mock, airbnb: AirbnbAdapter) -> None:
    """Test that unblocking marks the listing's dates available again."""
    mock_request.return_value = make_response(204)

    airbnb.unblock(make_connection(), RANGES)

    args, kwargs = mock_request.call_args
    assert args[1].endswith("/listings/listing-42/calendar_availability")
    assert kwargs["json"]["available"] is True
    assert "X-Airbnb-API-Key" in kwargs["headers"]


@pytest.mark.unit
@patch("booking_ledger.platforms.base.update_connection_credential")
@patch("booking_ledger.platforms.http.requests.request")
def test_rejected_token_is_refreshed_once(
    mock_request: Mock, mock_update: Mock, airbnb: AirbnbAdapter
) -> None:
    """
    Test that a 401 triggers a refresh and a single retry with the new token.

    Args:
        mock_request (Mock): Mocked requests.request call.
        mock_update (Mock): Mocked credential writer.
        airbnb (AirbnbAdapter): Adapter under test.
    """
    mock_request.side_effect = [
        make_response(401),
        make_response(200, {"access_token": "new-token", "expires_in": 3600}),
        make_response(204),
    ]
    connection = make_connection()

    airbnb.block(connection, RANGES)

    assert mock_request.call_count == 3
    token_call = mock_request.call_args_list[1]
    assert token_call.kwargs["data"]["grant_type"] == "refresh_token"
    assert token_call.kwargs["data"]["refresh_token"] == "refresh-1"
    assert mock_request.call_args_list[2].kwargs["headers"]["Authorization"] == "Bearer new-token"

    mock_update.assert_called_once()
    assert decrypt_secret(mock_update.call_args.kwargs["encrypted_access_token"]) == "new-token"
    assert decrypt_secret(connection["encrypted_access_token"]) == "new-token"


@pytest.mark.unit
@patch("booking_ledger.platforms.base.update_connection_credential")
@patch("booking_ledger.platforms.http.requests.request")
def test_second_rejection_is_terminal(
    mock_request: Mock, mock_update: Mock, airbnb: AirbnbAdapter
) -> None:
    """Test that a freshly issued token being rejected raises PlatformAuthError."""
    mock_request.side_effect = [
        make_response(401),
        make_response(200, {"access_token": "new-token", "expires_in": 3600}),
        make_response(401),
    ]

    with pytest.raises(PlatformAuthError):
        airbnb.block(make_connection(), RANGES)


@pytest.mark.unit
@patch("booking_ledger.platforms.http.requests.request")
def test_expired_airbnb_credential_without_refresh_token(
    mock_request: Mock, airbnb: AirbnbAdapter
) -> None:
    """Test that an expired credential with nothing to refresh it is terminal."""
    connection = make_connection(
        encrypted_refresh_token=None,
        credential_expires_at=utc_now() - timedelta(minutes=5),
    )

    with pytest.raises(PlatformAuthError, match="no refresh token available"):
        airbnb.block(connection, RANGES)

    mock_request.assert_not_called()


@pytest.mark.unit
@patch("booking_ledger.platforms.base.update_connection_credential")
@patch("booking_ledger.platforms.http.requests.request")
def test_booking_com_refreshes_with_client_credentials(
    mock_request: Mock, mock_update: Mock, booking_com: BookingComAdapter
) -> None:
    """Test that the machine account gets a new token without a refresh token."""
    mock_request.side_effect = [
        make_response(200, {"jwt": "machine-token", "expires_in": 3600}),
        make_response(200, {"ok": True}),
    ]
    connection = make_connection(
        "booking_com",
        encrypted_refresh_token=None,
        credential_expires_at=utc_now() - timedelta(minutes=1),
    )

    booking_com.block(connection, RANGES)

    token_call, put_call = mock_request.call_args_list
    assert token_call.args[0] == "POST"
    assert "client_id" in token_call.kwargs["json"]
    assert put_call.kwargs["headers"]["Authorization"] == "Bearer machine-token"


@pytest.mark.unit
@patch("booking_ledger.platforms.base.update_connection_credential")
@patch("booking_ledger.platforms.http.requests.request")
def test_credential_near_expiry_is_refreshed_first(
    mock_request: Mock, mock_update: Mock, airbnb: AirbnbAdapter
) -> None:
    """Test proactive refresh inside the refresh margin."""
    mock_request.side_effect = [
        make_response(200, {"access_token": "new-token", "refresh_token": "refresh-2"}),
        make_response(204),
    ]
    connection = make_connection(credential_expires_at=utc_now() + timedelta(seconds=120))

    airbnb.block(connection, RANGES)

    assert mock_request.call_args_list[0].args[0] == "POST"
    assert mock_request.call_args_list[1].kwargs["headers"]["Authorization"] == "Bearer new-token"
    assert decrypt_secret(connection["encrypted_refresh_token"]) == "refresh-2"


@pytest.mark.unit
@patch("booking_ledger.platforms.base.update_connection_credential")
@patch("booking_ledger.platforms.http.requests.request")
def test_refused_refresh_is_terminal(
    mock_request: Mock, mock_update: Mock, airbnb: AirbnbAdapter
) -> None:
    """Test that the marketplace refusing the refresh raises PlatformAuthError."""
    mock_request.return_value = make_response(400)
    connection = make_connection(credential_expires_at=utc_now() - timedelta(minutes=1))

    with pytest.raises(PlatformAuthError):
        airbnb.block(connection, RANGES)

    mock_update.assert_not_called()


@pytest.mark.unit
@patch("booking_ledger.platforms.http.requests.request")
def test_access_token_is_cached(mock_request: Mock, airbnb: AirbnbAdapter) -> None:
    """Test that the decrypted token is served from the cache on the next call."""
    mock_request.return_value = make_response(204)
    connection = make_connection()

    airbnb.block(connection, RANGES)
    connection["encrypted_access_token"] = "not-decryptable"
    airbnb.block(connection, RANGES)

    assert mock_request.call_count == 2


@pytest.mark.unit
@patch("booking_ledger.platforms.http.requests.request")
def test_list_reservations(mock_request: Mock, airbnb: AirbnbAdapter) -> None:
    """Test that marketplace reservations are returned as a list."""
    mock_request.return_value = make_response(200, {"reservations": [{"id": "HM123"}]})

    assert airbnb.list_reservations(make_connection()) == [{"id": "HM123"}]


@pytest.mark.unit
def test_get_adapter() -> None:
    """Test adapter lookup by platform name."""
    engine = MagicMock()

    assert isinstance(get_adapter("airbnb", engine), AirbnbAdapter)
    assert isinstance(get_adapter("booking_com", engine), BookingComAdapter)
    with pytest.raises(ValueError, match="Unsupported platform"):
        get_adapter("vrbo", engine)
