from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from booking_ledger.models.reservations import ACTIVE_STATUSES, Reservation

reservations = Reservation.__table__


def get_reservation(conn: Connection, reservation_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a reservation by primary key.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (str): Reservation id.

    Returns:
        Optional[dict[str, Any]]: Reservation row as a dict, or None if not found.
    """
    row = (
        conn.execute(select(reservations).where(reservations.c.id == reservation_id))
        .mappings()
        .first()
    )
    return dict(row) if row else None


def get_reservations_by_reference(
    conn: Connection, booking_reference: str
) -> list[dict[str, Any]]:
    """
    Fetch reservations carrying a booking reference.

    References are display labels without a uniqueness constraint, so this
    can return more than one row.
    """
    rows = (
        conn.execute(
            select(reservations)
            .where(reservations.c.booking_reference == booking_reference)
            .order_by(reservations.c.created_at)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]


def find_conflicting_reservations(
    conn: Connection,
    unit_id: str,
    check_in: date,
    check_out: date,
    exclude_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Find active reservations on a unit that conflict with a date range.

    Mirrors services.availability.ranges_conflict in SQL: the overlap rule is
    applied with the existing row on either side. Must run inside the same
    transaction as the write it guards.

    Args:
        conn (Connection): Transactional connection.
        unit_id (str): Unit whose calendar is checked.
        check_in (date): Requested check-in.
        check_out (date): Requested check-out.
        exclude_id (Optional[str]): Reservation to ignore (when re-checking itself).

    Returns:
        list[dict[str, Any]]: Conflicting pending/confirmed reservations.
    """
    stmt = select(reservations).where(
        reservations.c.unit_id == unit_id,
        reservations.c.status.in_(ACTIVE_STATUSES),
        or_(
            and_(reservations.c.check_in < check_out, reservations.c.check_out >= check_in),
            and_(reservations.c.check_out > check_in, reservations.c.check_in <= check_out),
        ),
    )
    if exclude_id is not None:
        stmt = stmt.where(reservations.c.id != exclude_id)
    return [dict(r) for r in conn.execute(stmt).mappings().all()]


def get_checked_out_reservations(
    conn: Connection, today: date, limit: int = 500
) -> list[dict[str, Any]]:
    """
    Fetch active reservations whose checkout date is before today.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        today (date): Current calendar day (UTC).
        limit (int): Maximum number of rows.

    Returns:
        list[dict[str, Any]]: Reservations ready to be completed.
    """
    rows = (
        conn.execute(
            select(reservations)
            .where(
                reservations.c.status.in_(ACTIVE_STATUSES),
                reservations.c.check_out < today,
            )
            .order_by(reservations.c.check_out)
            .limit(limit)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]


def get_overdue_unpaid_reservations(
    conn: Connection, now: datetime, limit: int = 500
) -> list[dict[str, Any]]:
    """
    Fetch pending reservations still awaiting payment after their deadline.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        now (datetime): Current time (UTC).
        limit (int): Maximum number of rows.

    Returns:
        list[dict[str, Any]]: Reservations whose unpaid hold has lapsed.
    """
    rows = (
        conn.execute(
            select(reservations)
            .where(
                reservations.c.status == "pending",
                reservations.c.payment_status == "pending",
                reservations.c.payment_deadline.is_not(None),
                reservations.c.payment_deadline < now,
            )
            .order_by(reservations.c.payment_deadline)
            .limit(limit)
        )
        .mappings()
        .all()
    )
    return [dict(r) for r in rows]
