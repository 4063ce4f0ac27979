"""Add payment deadline to reservations

Revision ID: 7c2d4e1f9a30
Revises: 3a1f9c2e7b10
Create Date: 2026-10-16 15:30:00.000000

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "7c2d4e1f9a30"
down_revision = "3a1f9c2e7b10"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "reservations",
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_reservations_status_payment_deadline",
        "reservations",
        ["status", "payment_deadline"],
    )


def downgrade() -> None:
    op.drop_index("ix_reservations_status_payment_deadline", table_name="reservations")
    op.drop_column("reservations", "payment_deadline")
