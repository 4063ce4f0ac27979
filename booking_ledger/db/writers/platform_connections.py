from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.engine import Connection

from booking_ledger.models.platform_connections import PlatformConnection
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

platform_connections = PlatformConnection.__table__


def update_last_synced(conn: Connection, connection_id: str, synced_at: datetime) -> None:
    """
    Stamp the last successful outbound sync of a connection.

    Args:
        conn: SQLAlchemy connection
        connection_id: Platform connection id
        synced_at: Time of the successful call
    """
    conn.execute(
        update(platform_connections)
        .where(platform_connections.c.id == connection_id)
        .values(last_synced_at=synced_at, last_error=None, updated_at=utc_now())
    )


def update_connection_credential(
    conn: Connection,
    connection_id: str,
    encrypted_access_token: str,
    credential_expires_at: Optional[datetime],
    encrypted_refresh_token: Optional[str] = None,
) -> None:
    """
    Store a refreshed marketplace credential.

    The refresh token is only replaced when the marketplace rotated it.
    """
    values = {
        "encrypted_access_token": encrypted_access_token,
        "credential_expires_at": credential_expires_at,
        "updated_at": utc_now(),
    }
    if encrypted_refresh_token is not None:
        values["encrypted_refresh_token"] = encrypted_refresh_token
    conn.execute(
        update(platform_connections)
        .where(platform_connections.c.id == connection_id)
        .values(**values)
    )
    logger.info("platform_credential_updated", connection_id=connection_id)


def mark_connection_error(conn: Connection, connection_id: str, error: str) -> bool:
    """
    Flag a connection as needing owner re-authorization.

    Returns:
        bool: True if this call flipped the status (it was still active)
    """
    result = conn.execute(
        update(platform_connections)
        .where(
            platform_connections.c.id == connection_id,
            platform_connections.c.status == "active",
        )
        .values(status="error", last_error=error, updated_at=utc_now())
    )
    return result.rowcount == 1
