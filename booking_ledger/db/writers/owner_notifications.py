import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import insert
from sqlalchemy.engine import Connection

from booking_ledger.models.owner_notifications import OwnerNotification
from booking_ledger.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

owner_notifications = OwnerNotification.__table__


def insert_owner_notification(
    conn: Connection,
    owner_id: str,
    type: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> str:
    """
    Append an entry to an owner's inbox.

    Args:
        conn: SQLAlchemy connection
        owner_id: Owner to notify
        type: Notification type (e.g. "sync_failure")
        title: Short title
        message: Human-readable description of what needs attention
        data: Structured context (reservation id, platform, ...)

    Returns:
        str: Id of the inserted notification
    """
    notification_id = str(uuid.uuid4())
    conn.execute(
        insert(owner_notifications).values(
            id=notification_id,
            owner_id=owner_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            is_read=False,
            created_at=utc_now(),
        )
    )
    logger.info("owner_notification_created", owner_id=owner_id, type=type)
    return notification_id
