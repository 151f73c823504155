"""initial settlement tables

Revision ID: 3c1f7a9d2b40
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f7a9d2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create PIN wallet and kiosk session tables."""
    op.create_table(
        "pin_wallet",
        sa.Column("id", sa.String(length=6), nullable=False),
        sa.Column("pin_hash", sa.String(length=80), nullable=False),
        sa.Column("amount", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("destination", sa.Text(), nullable=True),
        sa.Column("target_chain", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("bridge_attempts", sa.Integer(), nullable=False),
        sa.Column("last_bridge_error", sa.Text(), nullable=True),
        sa.Column("last_bridge_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bridge_tx_hash", sa.Text(), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pin_failures", sa.Integer(), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claim_token", sa.String(length=32), nullable=True),
        sa.Column("claim_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pin_wallet_status", "pin_wallet", ["status"])

    op.create_table(
        "kiosk_session",
        sa.Column("id", sa.String(length=16), nullable=False),
        sa.Column("channel_id", sa.Text(), nullable=True),
        sa.Column("user_identifier", sa.Text(), nullable=True),
        sa.Column("total_deposited", sa.String(length=40), nullable=False),
        sa.Column("current_balance", sa.String(length=40), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("destination_address", sa.Text(), nullable=True),
        sa.Column("destination_chain", sa.String(length=32), nullable=True),
        sa.Column("bridge_tx_hash", sa.Text(), nullable=True),
        sa.Column("fee_gross", sa.String(length=40), nullable=True),
        sa.Column("fee_amount", sa.String(length=40), nullable=True),
        sa.Column("fee_net", sa.String(length=40), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("pin_wallet_id", sa.String(length=6), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_kiosk_session_status", "kiosk_session", ["status"])


def downgrade() -> None:
    """Drop settlement tables."""
    op.drop_index("ix_kiosk_session_status", table_name="kiosk_session")
    op.drop_table("kiosk_session")
    op.drop_index("ix_pin_wallet_status", table_name="pin_wallet")
    op.drop_table("pin_wallet")
