from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_pin_attempts_grants"
down_revision = "0001_create_schema"
branch_labels = None
depends_on = None


def _has_table(table_name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(table_name)


def upgrade() -> None:
    if not _has_table("pin_attempts"):
        op.create_table(
            "pin_attempts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("client_key", sa.String(), nullable=False),
            sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("first_failed_at", sa.DateTime(), nullable=True),
            sa.Column("last_failed_at", sa.DateTime(), nullable=True),
            sa.Column("locked_until", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_pin_attempts_id", "pin_attempts", ["id"])
        op.create_index("ix_pin_attempts_client_key", "pin_attempts", ["client_key"], unique=True)

    if not _has_table("pending_pos_grants"):
        op.create_table(
            "pending_pos_grants",
            sa.Column("id", sa.String(length=32), primary_key=True),
            sa.Column("pos_merchant_id", sa.String(), nullable=True),
            sa.Column("pos_access_token", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("consumed_at", sa.DateTime(), nullable=True),
        )


def downgrade() -> None:
    op.drop_table("pending_pos_grants")
    op.drop_table("pin_attempts")
