"""Import every model so Base.metadata knows all ledger tables."""

from booking_ledger.models.base import Base
from booking_ledger.models.owner_notifications import OwnerNotification
from booking_ledger.models.platform_connections import PlatformConnection
from booking_ledger.models.reservations import Reservation
from booking_ledger.models.sync_failures import SyncFailure
from booking_ledger.models.units import UnitSettings

__all__ = [
    "Base",
    "OwnerNotification",
    "PlatformConnection",
    "Reservation",
    "SyncFailure",
    "UnitSettings",
]
