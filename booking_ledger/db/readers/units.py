from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_ledger.models.units import UnitSettings

unit_settings = UnitSettings.__table__


def get_unit_settings(conn: Connection, unit_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch the booking configuration of a unit.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        unit_id (str): Unit id.

    Returns:
        Optional[dict[str, Any]]: Settings row as a dict, or None if the unit is unknown.
    """
    row = (
        conn.execute(select(unit_settings).where(unit_settings.c.unit_id == unit_id))
        .mappings()
        .first()
    )
    return dict(row) if row else None
