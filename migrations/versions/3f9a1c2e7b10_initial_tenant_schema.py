"""initial_tenant_schema

Shared tables (tenants, settings, quotas, users, RBAC, audit), tenant-scoped
business tables, and row-level security policies keyed on the
``app.current_tenant_id`` session setting.

Revision ID: 3f9a1c2e7b10
Revises:
Create Date: 2026-10-19 10:12:44.204117

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f9a1c2e7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RLS_TABLES = ("orders", "payments", "nft_mint_transactions", "audit_logs")

# Unset or empty setting matches no rows.
CURRENT_TENANT = "NULLIF(current_setting('app.current_tenant_id', true), '')::uuid"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _tenant_fk(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.Uuid(),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create the full schema and enable row-level security."""
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("plan", sa.String(50), nullable=False, server_default="free"),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.CheckConstraint(
            "plan IN ('free', 'pro', 'enterprise', 'custom')", name="chk_tenant_plan"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name="chk_tenant_status"
        ),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)
    op.create_index("ix_tenants_status", "tenants", ["status"])

    op.create_table(
        "tenant_settings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("max_users", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("max_orders", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("max_events", sa.Integer(), nullable=False, server_default="100"),
        sa.Column(
            "features", postgresql.JSONB(), nullable=False, server_default="[]"
        ),
        sa.Column("webhook_url", sa.String(500), nullable=True),
        sa.Column("custom_domain", sa.String(255), nullable=True),
        sa.Column(
            "data_residency", sa.String(50), nullable=False, server_default="global"
        ),
        sa.Column(
            "encryption_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id"),
        sa.CheckConstraint(
            "data_residency IN ('us', 'eu', 'asia', 'global')",
            name="chk_tenant_settings_residency",
        ),
    )

    op.create_table(
        "tenant_quotas",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("max_users", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("used_users", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_orders", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("used_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_events", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("used_events", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "storage_quota_mb", sa.Integer(), nullable=False, server_default="1000"
        ),
        sa.Column("used_storage_mb", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "api_calls_per_day", sa.Integer(), nullable=False, server_default="10000"
        ),
        sa.Column("used_api_calls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reset_date", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id"),
        sa.CheckConstraint(
            "used_users >= 0 AND used_orders >= 0 AND used_events >= 0 "
            "AND used_storage_mb >= 0 AND used_api_calls >= 0",
            name="chk_tenant_quota_non_negative",
        ),
    )
    op.create_index("ix_tenant_quotas_reset_date", "tenant_quotas", ["reset_date"])

    op.create_table(
        "system_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), nullable=False, server_default="user"),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "email", name="uq_system_users_tenant_email"),
        sa.CheckConstraint(
            "role IN ('admin', 'manager', 'user', 'viewer')",
            name="chk_system_users_role",
        ),
    )
    op.create_index("ix_system_users_tenant_id", "system_users", ["tenant_id"])

    op.create_table(
        "permissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("resource", sa.String(50), nullable=True),
        sa.Column("action", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_built_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
    )
    op.create_index("ix_roles_tenant_id", "roles", ["tenant_id"])

    op.create_table(
        "role_permissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "role_id",
            sa.Uuid(),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "permission_id",
            sa.Uuid(),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("role_id", "permission_id", name="uq_role_permissions"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("user_id", sa.String(255), nullable=False, server_default="system"),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("changes", postgresql.JSONB(), nullable=True),
        sa.Column("previous", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="success"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("status IN ('success', 'failure')", name="chk_audit_status"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index(
        "ix_audit_logs_tenant_timestamp", "audit_logs", ["tenant_id", "timestamp"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("event_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("payment_status", sa.String(50), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'cancelled')",
            name="chk_orders_status",
        ),
    )
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])
    op.create_index("ix_orders_event_id", "orders", ["event_id"])
    op.create_index("ix_orders_tenant_created", "orders", ["tenant_id", "created_at"])
    op.create_index("ix_orders_tenant_user", "orders", ["tenant_id", "user_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "order_id",
            sa.Uuid(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("payment_method", sa.String(50), nullable=False),
        sa.Column("provider_transaction_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'refunded')",
            name="chk_payments_status",
        ),
    )
    op.create_index("ix_payments_tenant_id", "payments", ["tenant_id"])
    op.create_index("ix_payments_order_id", "payments", ["order_id"])
    op.create_index(
        "ix_payments_tenant_created", "payments", ["tenant_id", "created_at"]
    )

    op.create_table(
        "nft_mint_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "order_id",
            sa.Uuid(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "payment_id",
            sa.Uuid(),
            sa.ForeignKey("payments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("nft_contract_address", sa.String(255), nullable=True),
        sa.Column("nft_token_id", sa.String(255), nullable=True),
        sa.Column("blockchain_tx_hash", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("error_details", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'minting', 'minted', 'failed', 'cancelled')",
            name="chk_nft_mint_status",
        ),
    )
    op.create_index(
        "ix_nft_mint_transactions_tenant_id", "nft_mint_transactions", ["tenant_id"]
    )
    op.create_index(
        "ix_nft_mint_transactions_order_id", "nft_mint_transactions", ["order_id"]
    )
    op.create_index(
        "ix_nft_mint_tenant_created",
        "nft_mint_transactions",
        ["tenant_id", "created_at"],
    )

    # Row-level security: FORCE applies the policies to the table owner too.
    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY {table}_tenant_isolation ON {table} "
            f"USING (tenant_id = {CURRENT_TENANT}) "
            f"WITH CHECK (tenant_id = {CURRENT_TENANT})"
        )


def downgrade() -> None:
    """Drop policies and every table."""
    for table in RLS_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}")

    op.drop_table("nft_mint_transactions")
    op.drop_table("payments")
    op.drop_table("orders")
    op.drop_table("audit_logs")
    op.drop_table("role_permissions")
    op.drop_table("roles")
    op.drop_table("permissions")
    op.drop_table("system_users")
    op.drop_table("tenant_quotas")
    op.drop_table("tenant_settings")
    op.drop_table("tenants")
