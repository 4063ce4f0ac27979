"""Booking.com availability adapter (machine account)."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from booking_ledger.config import (
    BOOKING_COM_API_URL,
    BOOKING_COM_CLIENT_ID,
    BOOKING_COM_CLIENT_SECRET,
    BOOKING_COM_TOKEN_URL,
)
from booking_ledger.platforms.base import (
    DateRange,
    IssuedCredential,
    PlatformAdapter,
    PlatformError,
)
from booking_ledger.platforms.http import send_request
from booking_ledger.utils.datetime import utc_now

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class BookingComAdapter(PlatformAdapter):
    """
    Adapter for the Booking.com connectivity API.

    Booking.com authenticates the integration as a machine account, so a new
    token is obtained with the client credentials and no per-connection
    refresh token is needed. external_property_id is the hotel id and
    external_unit_id the room type id.
    """

    platform = "booking_com"
    requires_refresh_token = False

    def _set_availability(
        self,
        token: str,
        connection: dict[str, Any],
        ranges: list[DateRange],
        available: bool,
    ) -> None:
        url = (
            f"{BOOKING_COM_API_URL}/hotels/{connection['external_property_id']}"
            f"/room-types/{connection['external_unit_id']}/availability"
        )
        for date_range in ranges:
            send_request(
                self.platform,
                "availability",
                "PUT",
                url,
                token=token,
                json={**date_range.to_payload(), "available": available},
            )

    def _fetch_reservations(self, token: str, connection: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{BOOKING_COM_API_URL}/hotels/{connection['external_property_id']}/reservations"
        payload = send_request(
            self.platform,
            "reservations",
            "GET",
            url,
            token=token,
            params={"room_type_id": connection["external_unit_id"]},
        )
        return list((payload or {}).get("reservations", []))

    def _issue_credential(self, refresh_token: Optional[str]) -> IssuedCredential:
        payload = send_request(
            self.platform,
            "token",
            "POST",
            BOOKING_COM_TOKEN_URL,
            json={"client_id": BOOKING_COM_CLIENT_ID, "client_secret": BOOKING_COM_CLIENT_SECRET},
        )
        payload = payload or {}
        access_token = payload.get("jwt") or payload.get("access_token")
        if not isinstance(access_token, str):
            raise PlatformError("No access token in Booking.com response")
        expires_in = int(payload.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        return IssuedCredential(
            access_token=access_token,
            expires_at=utc_now() + timedelta(seconds=expires_in),
        )
