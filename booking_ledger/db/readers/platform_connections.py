from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_ledger.models.platform_connections import PlatformConnection

platform_connections = PlatformConnection.__table__


def get_connection(conn: Connection, connection_id: str) -> Optional[dict[str, Any]]:
    """Fetch a platform connection by id, whatever its status."""
    row = (
        conn.execute(
            select(platform_connections).where(platform_connections.c.id == connection_id)
        )
        .mappings()
        .first()
    )
    return dict(row) if row else None


def get_active_connections(conn: Connection, unit_id: str) -> list[dict[str, Any]]:
    """
    Fetch the active marketplace connections of a unit.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        unit_id (str): Unit id.

    Returns:
        list[dict[str, Any]]: Connections with status "active", ordered by platform.
    """
    rows = (
        conn.execute(
            select(platform_connections)
            .where(
                platform_connections.c.unit_id == unit_id,
                platform_connections.c.status == "active",
            )
            .order_by(platform_connections.c.platform, platform_connections.c.id)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]


def get_active_connection(
    conn: Connection, unit_id: str, platform: str
) -> Optional[dict[str, Any]]:
    """Fetch the active connection of a unit for one marketplace, if any."""
    row = (
        conn.execute(
            select(platform_connections)
            .where(
                platform_connections.c.unit_id == unit_id,
                platform_connections.c.platform == platform,
                platform_connections.c.status == "active",
            )
            .order_by(platform_connections.c.created_at)
        )
        .mappings()
        .first()
    )
    return dict(row) if row else None
