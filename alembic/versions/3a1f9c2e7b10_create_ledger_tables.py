"""Create ledger tables

Revision ID: 3a1f9c2e7b10
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3a1f9c2e7b10"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "unit_settings",
        sa.Column("unit_id", sa.String(64), primary_key=True),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("payment_methods", JSON_TYPE, nullable=False),
        sa.Column("require_owner_approval", sa.Boolean(), nullable=False),
        sa.Column("max_guests", sa.Integer(), nullable=True),
        sa.Column("min_stay_nights", sa.Integer(), nullable=True),
        sa.Column("allow_guest_cancellation", sa.Boolean(), nullable=False),
        sa.Column("cancellation_deadline_hours", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_unit_settings_owner_id", "unit_settings", ["owner_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("unit_id", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("guest_name", sa.String(255), nullable=False),
        sa.Column("guest_email", sa.String(255), nullable=False),
        sa.Column("guest_phone", sa.String(64), nullable=True),
        sa.Column("guest_count", sa.Integer(), nullable=False),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_option", sa.String(16), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_status", sa.String(32), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("require_owner_approval", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("booking_reference", sa.String(32), nullable=False),
        sa.Column("access_token_hash", sa.String(64), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(32), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("refund_status", sa.String(32), nullable=True),
        sa.Column("refund_id", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_reservations_unit_status", "reservations", ["unit_id", "status"])
    op.create_index("ix_reservations_owner_id", "reservations", ["owner_id"])
    op.create_index("ix_reservations_booking_reference", "reservations", ["booking_reference"])

    op.create_table(
        "platform_connections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("unit_id", sa.String(64), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("external_property_id", sa.String(255), nullable=True),
        sa.Column("external_unit_id", sa.String(255), nullable=False),
        sa.Column("encrypted_access_token", sa.Text(), nullable=False),
        sa.Column("encrypted_refresh_token", sa.Text(), nullable=True),
        sa.Column("credential_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_platform_connections_unit_status", "platform_connections", ["unit_id", "status"]
    )
    op.create_index("ix_platform_connections_owner_id", "platform_connections", ["owner_id"])

    op.create_table(
        "sync_failures",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("unit_id", sa.String(64), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("connection_id", sa.String(36), nullable=True),
        sa.Column("reservation_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sync_failures_reservation_id", "sync_failures", ["reservation_id"])
    op.create_index("ix_sync_failures_next_retry_at", "sync_failures", ["next_retry_at"])

    op.create_table(
        "owner_notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", JSON_TYPE, nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("ix_owner_notifications_owner_id", "owner_notifications", ["owner_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("owner_notifications")
    op.drop_table("sync_failures")
    op.drop_table("platform_connections")
    op.drop_table("reservations")
    op.drop_table("unit_settings")
