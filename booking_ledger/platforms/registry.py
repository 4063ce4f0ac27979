"""Lookup of adapter classes by platform name."""

from __future__ import annotations

from typing import Callable

from sqlalchemy.engine import Engine

from booking_ledger.platforms.airbnb import AirbnbAdapter
from booking_ledger.platforms.base import PlatformAdapter
from booking_ledger.platforms.booking_com import BookingComAdapter

ADAPTERS: dict[str, type[PlatformAdapter]] = {
    BookingComAdapter.platform: BookingComAdapter,
    AirbnbAdapter.platform: AirbnbAdapter,
}

AdapterFactory = Callable[[str, Engine], PlatformAdapter]


def get_adapter(platform: str, engine: Engine) -> PlatformAdapter:
    """
    Build the adapter for a marketplace.

    Raises:
        ValueError: If no adapter exists for the platform
    """
    adapter_cls = ADAPTERS.get(platform)
    if adapter_cls is None:
        raise ValueError(f"Unsupported platform: {platform}")
    return adapter_cls(engine)
