"""Shared fixtures for integration tests requiring live infrastructure."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
from sqlalchemy import text

from tenant_core.audit import AuditRecorder
from tenant_core.config import Settings, get_settings
from tenant_core.models.tenant import TenantInfo
from tenant_core.storage.database import Database
from tenant_core.storage.sql import SqlBackend, SqlProvider
from tenant_core.tenant_service import TenantService

# Role without BYPASSRLS; superusers skip row-level security even when forced.
RESTRICTED_ROLE = "tenant_core_rls_restricted"

_CREATE_RESTRICTED_ROLE = f"""
DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{RESTRICTED_ROLE}') THEN
        CREATE ROLE {RESTRICTED_ROLE} NOLOGIN NOSUPERUSER NOBYPASSRLS;
    END IF;
END
$$
"""

# ── Database (function-scoped, matches the default loop scope) ─────


@pytest.fixture()
def db_settings() -> Settings:
    return get_settings()


@pytest.fixture()
async def database(db_settings: Settings) -> AsyncGenerator[Database]:
    db = Database(db_settings)
    db.connect()
    yield db
    await db.dispose()


@pytest.fixture()
def sql_provider(database: Database) -> SqlProvider:
    return SqlProvider(database)


# ── Row-level security ─────────────────────────────────────────────


@pytest.fixture()
async def restrict(database: Database) -> Callable[[SqlBackend], Awaitable[None]]:
    """Return a coroutine that drops the unit of work to a role bound by RLS.

    A connecting user that already lacks superuser and BYPASSRLS is left
    as it is.
    """
    async with database.session() as session, session.begin():
        result = await session.execute(
            text(
                "SELECT rolsuper OR rolbypassrls FROM pg_roles "
                "WHERE rolname = current_user"
            )
        )
        bypasses = bool(result.scalar_one())
        if bypasses:
            await session.execute(text(_CREATE_RESTRICTED_ROLE))
            await session.execute(
                text(
                    "GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES "
                    f"IN SCHEMA public TO {RESTRICTED_ROLE}"
                )
            )

    async def apply(backend: SqlBackend) -> None:
        if bypasses:
            await backend.execute(f"SET LOCAL ROLE {RESTRICTED_ROLE}", {})

    return apply


# ── Committed tenants (real commit + DELETE cleanup) ───────────────


@pytest.fixture()
async def onboard(
    sql_provider: SqlProvider, db_settings: Settings
) -> AsyncGenerator[Callable[..., Awaitable[TenantInfo]]]:
    """Factory creating committed tenants with unique slugs.

    Pass an ``AuditRecorder`` to have the onboarding audited. Tenants are
    hard-deleted after the test; child rows cascade.
    """
    created: list[uuid.UUID] = []

    async def create(label: str, audit: AuditRecorder | None = None) -> TenantInfo:
        slug = f"it-{label}-{uuid.uuid4().hex[:8]}"
        async with sql_provider.unit_of_work() as backend:
            service = TenantService(backend, audit=audit, settings=db_settings)
            tenant = await service.create_tenant(label.title(), slug, f"ops@{slug}.test")
        created.append(tenant.id)
        return tenant

    yield create

    async with sql_provider.unit_of_work() as backend:
        for tenant_id in created:
            await backend.execute("DELETE FROM tenants WHERE id = :id", {"id": tenant_id})
