"""rls_admin_bypass

Let the tenant isolation policies be lifted for one statement block by
setting ``app.rls_bypass`` to ``on``. Only the repository's unsafe() path
sets it, scoped to a savepoint.

Revision ID: 8c2d4e6f1a37
Revises: 3f9a1c2e7b10
Create Date: 2026-10-19 16:40:02.518903

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "8c2d4e6f1a37"
down_revision: Union[str, Sequence[str], None] = "3f9a1c2e7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RLS_TABLES = ("orders", "payments", "nft_mint_transactions", "audit_logs")

CURRENT_TENANT = "NULLIF(current_setting('app.current_tenant_id', true), '')::uuid"
BYPASS = "coalesce(current_setting('app.rls_bypass', true), '') = 'on'"


def _alter(table: str, condition: str) -> None:
    op.execute(
        f"ALTER POLICY {table}_tenant_isolation ON {table} "
        f"USING ({condition}) WITH CHECK ({condition})"
    )


def upgrade() -> None:
    for table in RLS_TABLES:
        _alter(table, f"tenant_id = {CURRENT_TENANT} OR {BYPASS}")


def downgrade() -> None:
    for table in RLS_TABLES:
        _alter(table, f"tenant_id = {CURRENT_TENANT}")
