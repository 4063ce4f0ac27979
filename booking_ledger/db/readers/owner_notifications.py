from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Connection

from booking_ledger.models.owner_notifications import OwnerNotification

owner_notifications = OwnerNotification.__table__


def list_owner_notifications(conn: Connection, owner_id: str) -> list[dict[str, Any]]:
    """Fetch an owner's inbox, oldest first."""
    rows = (
        conn.execute(
            select(owner_notifications)
            .where(owner_notifications.c.owner_id == owner_id)
            .order_by(owner_notifications.c.created_at, owner_notifications.c.id)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]
