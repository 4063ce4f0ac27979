"""Airbnb calendar adapter."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from booking_ledger.config import (
    AIRBNB_API_URL,
    AIRBNB_CLIENT_ID,
    AIRBNB_CLIENT_SECRET,
    AIRBNB_TOKEN_URL,
)
from booking_ledger.platforms.base import (
    DateRange,
    IssuedCredential,
    PlatformAdapter,
    PlatformError,
)
from booking_ledger.platforms.http import send_request
from booking_ledger.utils.datetime import utc_now


class AirbnbAdapter(PlatformAdapter):
    """
    Adapter for the Airbnb listings API.

    Access tokens are per host and refreshed with the refresh token stored on
    the connection. external_unit_id is the Airbnb listing id.
    """

    platform = "airbnb"
    requires_refresh_token = True

    def _headers(self) -> dict[str, str]:
        return {"X-Airbnb-API-Key": AIRBNB_CLIENT_ID}

    def _set_availability(
        self,
        token: str,
        connection: dict[str, Any],
        ranges: list[DateRange],
        available: bool,
    ) -> None:
        url = f"{AIRBNB_API_URL}/listings/{connection['external_unit_id']}/calendar_availability"
        for date_range in ranges:
            send_request(
                self.platform,
                "calendar_availability",
                "PUT",
                url,
                token=token,
                json={**date_range.to_payload(), "available": available},
                headers=self._headers(),
            )

    def _fetch_reservations(self, token: str, connection: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{AIRBNB_API_URL}/listings/{connection['external_unit_id']}/reservations"
        payload = send_request(
            self.platform, "reservations", "GET", url, token=token, headers=self._headers()
        )
        return list((payload or {}).get("reservations", []))

    def _issue_credential(self, refresh_token: Optional[str]) -> IssuedCredential:
        payload = send_request(
            self.platform,
            "token",
            "POST",
            AIRBNB_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": AIRBNB_CLIENT_ID,
                "client_secret": AIRBNB_CLIENT_SECRET,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        payload = payload or {}
        access_token = payload.get("access_token")
        if not isinstance(access_token, str):
            raise PlatformError("No access token in Airbnb response")
        expires_in = payload.get("expires_in")
        return IssuedCredential(
            access_token=access_token,
            expires_at=utc_now() + timedelta(seconds=int(expires_in)) if expires_in else None,
            refresh_token=payload.get("refresh_token"),
        )
