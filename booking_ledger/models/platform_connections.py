"""SQLAlchemy model for marketplace connections of a unit."""

from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.sql import func

from booking_ledger.models.base import Base


class PlatformConnection(Base):
    """
    ORM model for a unit's link to an external marketplace calendar.

    Rows are created by the marketplace authorization flow. Credentials are
    stored Fernet-encrypted; a connection whose credential can no longer be
    refreshed is flipped to status "error" and skipped by the sync engine.
    """

    __tablename__ = "platform_connections"
    __table_args__ = (Index("ix_platform_connections_unit_status", "unit_id", "status"),)

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    unit_id = Column(String(64), nullable=False)
    platform = Column(String(32), nullable=False)  # booking_com, airbnb
    external_property_id = Column(String(255), nullable=True)
    external_unit_id = Column(String(255), nullable=False)
    encrypted_access_token = Column(Text, nullable=False)
    encrypted_refresh_token = Column(Text, nullable=True)
    credential_expires_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), nullable=False, default="active")
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
