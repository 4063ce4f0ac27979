"""SQLAlchemy model for the durable sync retry queue."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from booking_ledger.models.base import Base


class SyncFailure(Base):
    """
    ORM model for one failed outbound calendar push awaiting retry.

    The scheduler picks rows whose next_retry_at has elapsed and whose
    retry_count is below the ceiling. Rows are deleted on success, when the
    reservation or connection no longer applies, or on exhaustion.
    """

    __tablename__ = "sync_failures"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(64), nullable=False)
    unit_id = Column(String(64), nullable=False)
    platform = Column(String(32), nullable=False)
    connection_id = Column(String(36), nullable=True)
    reservation_id = Column(String(36), nullable=False, index=True)
    action = Column(String(16), nullable=False, default="block")
    error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
