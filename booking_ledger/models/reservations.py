# models/reservations.py

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from booking_ledger.models.base import Base

ACTIVE_STATUSES = ("pending", "confirmed")


class Reservation(Base):
    """
    ORM model for a guest's claim on a unit for a date range.

    Rows are the ledger's source of truth. For a given unit_id, rows whose
    status is pending or confirmed never overlap. Only the SHA-256 hash of
    the guest access token is stored; the plaintext is returned once at
    creation. Reservations are never deleted: cancellation and the checkout
    sweep move them to cancelled or completed.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_unit_status", "unit_id", "status"),
        Index("ix_reservations_status_payment_deadline", "status", "payment_deadline"),
    )

    id = Column(String(36), primary_key=True)
    unit_id = Column(String(64), nullable=False)
    property_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)

    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(64), nullable=True)
    guest_count = Column(Integer, nullable=False)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)

    total_price = Column(Numeric(12, 2), nullable=False)
    deposit_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_option = Column(String(16), nullable=False)  # full, deposit, none
    payment_method = Column(String(32), nullable=False)  # stripe, bank_transfer, none
    payment_status = Column(String(32), nullable=False)  # pending, paid, not_required
    payment_reference = Column(String(255), nullable=True)  # processor payment id
    payment_deadline = Column(DateTime(timezone=True), nullable=True)  # unpaid hold release time
    require_owner_approval = Column(Boolean, nullable=False, default=False)

    status = Column(String(16), nullable=False)
    booking_reference = Column(String(32), nullable=False, index=True)  # display label only
    access_token_hash = Column(String(64), nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(32), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(12, 2), nullable=True)
    refund_status = Column(String(32), nullable=True)
    refund_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
