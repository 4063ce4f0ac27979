"""SQLAlchemy model for per-unit booking configuration."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from booking_ledger.models.base import Base


class UnitSettings(Base):
    """
    ORM model for the booking rules of one rental unit.

    Managed by property administration; the ledger only reads it.
    payment_methods maps a method name (stripe, bank_transfer, none) to
    ``{"enabled": bool, "deposit_percentage": int}``.
    """

    __tablename__ = "unit_settings"

    unit_id = Column(String(64), primary_key=True)
    property_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    payment_methods = Column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    require_owner_approval = Column(Boolean, nullable=False, default=False)
    max_guests = Column(Integer, nullable=True)
    min_stay_nights = Column(Integer, nullable=True)
    allow_guest_cancellation = Column(Boolean, nullable=False, default=True)
    cancellation_deadline_hours = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
