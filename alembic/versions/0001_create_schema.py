from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("pos_merchant_id", sa.String(), nullable=True),
        sa.Column("pos_access_token", sa.Text(), nullable=True),
        sa.Column("pos_connected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tenants_owner_user_id", "tenants", ["owner_user_id"], unique=True)
    op.create_index("ix_tenants_pos_merchant_id", "tenants", ["pos_merchant_id"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("staff_id", sa.String(), nullable=True),
        sa.Column("level_id", sa.String(), nullable=True),
        sa.Column("permissions", sa.JSON(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("ix_accounts_tenant_id", "accounts", ["tenant_id"])
    op.create_index("ix_accounts_staff_id", "accounts", ["staff_id"])

    op.create_table(
        "staff_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("pos_team_member_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("level_id", sa.String(), nullable=False, server_default="lvl_1"),
        sa.Column("permission_overrides", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="invited"),
        sa.Column("source", sa.String(), nullable=False, server_default="roster"),
        sa.Column("join_pin", sa.String(length=4), nullable=True),
        sa.Column("pin_created_at", sa.DateTime(), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_staff_members_id", "staff_members", ["id"])
    op.create_index("ix_staff_members_tenant_id", "staff_members", ["tenant_id"])
    op.create_index(
        "ix_staff_members_pos_team_member_id", "staff_members", ["pos_team_member_id"], unique=True
    )
    op.create_index("ix_staff_members_join_pin", "staff_members", ["join_pin"])

    op.create_table(
        "synced_catalog_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("pos_item_id", sa.String(), nullable=True),
        sa.Column("pos_variation_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("variation_name", sa.String(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("tenant_id", "pos_variation_id", name="uq_synced_catalog_items_tenant_variation"),
    )
    op.create_index("ix_synced_catalog_items_id", "synced_catalog_items", ["id"])
    op.create_index("ix_synced_catalog_items_tenant_id", "synced_catalog_items", ["tenant_id"])

    op.create_table(
        "synced_customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("pos_customer_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False, server_default="Client"),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("tenant_id", "pos_customer_id", name="uq_synced_customers_tenant_customer"),
    )
    op.create_index("ix_synced_customers_id", "synced_customers", ["id"])
    op.create_index("ix_synced_customers_tenant_id", "synced_customers", ["tenant_id"])

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("row_count", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_sync_runs_id", "sync_runs", ["id"])
    op.create_index("ix_sync_runs_tenant_id", "sync_runs", ["tenant_id"])
    op.create_index("ix_sync_runs_kind", "sync_runs", ["kind"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=True),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_audit_log_id", "audit_log", ["id"])
    op.create_index("ix_audit_log_tenant_id", "audit_log", ["tenant_id"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("sync_runs")
    op.drop_table("synced_customers")
    op.drop_table("synced_catalog_items")
    op.drop_table("staff_members")
    op.drop_table("accounts")
    op.drop_table("tenants")
