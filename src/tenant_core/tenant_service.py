"""Tenant lifecycle: onboarding, settings, quotas, suspension, statistics."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from tenant_core.audit import AuditAction, AuditRecorder
from tenant_core.config import Settings, get_settings
from tenant_core.errors import InvalidDataError, NotFoundError
from tenant_core.models.tenant import (
    Plan,
    TenantInfo,
    TenantQuota,
    TenantSettings,
    TenantSettingsUpdate,
    TenantStats,
    TenantStatus,
    TenantUser,
    settings_from_row,
)
from tenant_core.quota import QuotaManager, default_quota_values
from tenant_core.storage.base import Row, StorageBackend, parse_tenant_id

logger = structlog.get_logger()

TENANT_RESOURCE = "tenant"
SETTINGS_RESOURCE = "tenant_settings"


class TenantService:
    """Tenant management within one unit of work.

    Args:
        backend: Storage backend of the current unit of work.
        audit: Recorder for lifecycle events; optional.
        settings: Source of onboarding defaults.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        audit: AuditRecorder | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._backend = backend
        self._audit = audit
        self._settings = settings or get_settings()
        self._quota = QuotaManager(backend, self._settings)

    def _default_settings(self) -> dict[str, Any]:
        return {
            "max_users": self._settings.default_max_users,
            "max_orders": self._settings.default_max_orders,
            "max_events": self._settings.default_max_events,
            "features": [],
            "data_residency": "global",
            "encryption_enabled": False,
        }

    async def _tenant_row(self, tid: uuid.UUID) -> Row:
        rows = await self._backend.select("tenants", {"id": tid, "deleted_at": None})
        if not rows:
            raise NotFoundError(TENANT_RESOURCE, tid)
        return rows[0]

    async def create_tenant(
        self,
        name: str,
        slug: str,
        email: str,
        plan: Plan | str = Plan.FREE,
        *,
        user_id: str | None = None,
    ) -> TenantInfo:
        """Onboard a tenant with its settings and quota rows.

        All three rows are written in one transaction.

        Raises:
            InvalidDataError: Slug already taken or plan unknown.
        """
        try:
            plan = Plan(plan)
        except ValueError:
            raise InvalidDataError(f"Unknown plan: {plan}") from None

        if await self._backend.select("tenants", {"slug": slug}, limit=1):
            raise InvalidDataError(f"Tenant slug already exists: {slug}")

        now = datetime.now(UTC)
        async with self._backend.transaction():
            tenant = await self._backend.insert(
                "tenants",
                {
                    "name": name,
                    "slug": slug,
                    "email": email,
                    "plan": str(plan),
                    "status": str(TenantStatus.ACTIVE),
                    "metadata": {},
                    "created_at": now,
                    "updated_at": now,
                },
            )
            settings_row = await self._backend.insert(
                "tenant_settings", {"tenant_id": tenant["id"], **self._default_settings()}
            )
            await self._backend.insert(
                "tenant_quotas",
                {"tenant_id": tenant["id"], **default_quota_values(self._settings, now)},
            )

        logger.info("tenant_created", tenant_id=str(tenant["id"]), slug=slug)
        if self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tenant["id"],
                user_id,
                AuditAction.CREATE_TENANT,
                TENANT_RESOURCE,
                tenant["id"],
                changes={"name": name, "slug": slug, "email": email, "plan": str(plan)},
            )
        return TenantInfo.model_validate(
            {**tenant, "settings": settings_from_row(settings_row)}
        )

    async def get_tenant_info(self, tenant_id: str | uuid.UUID) -> TenantInfo:
        """Tenant with its settings attached.

        Raises:
            NotFoundError: Unknown or deleted tenant.
        """
        tid = parse_tenant_id(tenant_id)
        tenant = await self._tenant_row(tid)
        settings = await self._ensure_settings(tid)
        return TenantInfo.model_validate({**tenant, "settings": settings})

    async def list_tenants(self, status: TenantStatus | None = None) -> list[TenantInfo]:
        """All tenants (optionally by status), newest first."""
        where = {"status": str(status)} if status else {}
        rows = await self._backend.select(
            "tenants", where, order_by=[("created_at", True)]
        )
        return [TenantInfo.model_validate(r) for r in rows]

    async def get_tenant_settings(self, tenant_id: str | uuid.UUID) -> TenantSettings:
        """Settings of the tenant, materializing defaults on first read."""
        tid = parse_tenant_id(tenant_id)
        await self._tenant_row(tid)
        return await self._ensure_settings(tid)

    async def update_tenant_settings(
        self,
        tenant_id: str | uuid.UUID,
        update: TenantSettingsUpdate,
        *,
        user_id: str | None = None,
    ) -> TenantSettings:
        """Apply the supplied settings; omitted fields keep stored values."""
        tid = parse_tenant_id(tenant_id)
        await self._tenant_row(tid)
        previous = await self._ensure_settings(tid)

        changes = update.model_dump(mode="json", exclude_none=True)
        if not changes:
            return previous

        rows = await self._backend.update(
            "tenant_settings",
            {"tenant_id": tid},
            {**changes, "updated_at": datetime.now(UTC)},
        )
        if self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.UPDATE_SETTINGS,
                SETTINGS_RESOURCE,
                tid,
                changes=changes,
                previous=previous.model_dump(mode="json"),
            )
        return settings_from_row(rows[0])

    async def get_quotas(self, tenant_id: str | uuid.UUID) -> TenantQuota:
        tid = parse_tenant_id(tenant_id)
        await self._tenant_row(tid)
        return await self._quota.get_quota(tid)

    async def suspend_tenant(
        self,
        tenant_id: str | uuid.UUID,
        reason: str,
        *,
        user_id: str | None = None,
    ) -> TenantInfo:
        """Mark the tenant suspended and keep the reason in its metadata."""
        tid = parse_tenant_id(tenant_id)
        tenant = await self._tenant_row(tid)
        metadata = {**(tenant.get("metadata") or {}), "suspension_reason": reason}

        rows = await self._backend.update(
            "tenants",
            {"id": tid},
            {
                "status": str(TenantStatus.SUSPENDED),
                "metadata": metadata,
                "updated_at": datetime.now(UTC),
            },
        )
        logger.info("tenant_suspended", tenant_id=str(tid))
        if self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.SUSPEND_TENANT,
                TENANT_RESOURCE,
                tid,
                changes={"status": str(TenantStatus.SUSPENDED), "reason": reason},
                previous={"status": tenant["status"]},
            )
        return TenantInfo.model_validate(rows[0])

    async def delete_tenant(
        self, tenant_id: str | uuid.UUID, *, user_id: str | None = None
    ) -> None:
        """Soft delete: the tenant disappears from reads, rows are kept."""
        tid = parse_tenant_id(tenant_id)
        tenant = await self._tenant_row(tid)
        now = datetime.now(UTC)
        await self._backend.update(
            "tenants",
            {"id": tid},
            {"status": str(TenantStatus.DELETED), "deleted_at": now, "updated_at": now},
        )
        logger.info("tenant_deleted", tenant_id=str(tid))
        if self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.DELETE_TENANT,
                TENANT_RESOURCE,
                tid,
                previous={"status": tenant["status"]},
            )

    async def get_tenant_users(self, tenant_id: str | uuid.UUID) -> list[TenantUser]:
        """Active users of the tenant with their role permissions resolved."""
        tid = parse_tenant_id(tenant_id)
        rows = await self._backend.select(
            "system_users",
            {"tenant_id": tid, "deleted_at": None},
            order_by=[("created_at", True)],
        )
        permissions_by_role: dict[str, list[str]] = {}
        users: list[TenantUser] = []
        for row in rows:
            role = row["role"]
            if role not in permissions_by_role:
                permissions_by_role[role] = await self._role_permissions(tid, role)
            users.append(
                TenantUser.model_validate(
                    {**row, "permissions": permissions_by_role[role]}
                )
            )
        return users

    async def get_tenant_stats(self, tenant_id: str | uuid.UUID) -> TenantStats:
        """Users, recent orders and revenue, recent audit activity."""
        tid = parse_tenant_id(tenant_id)
        await self._backend.bind_tenant(str(tid))
        now = datetime.now(UTC)
        last_30_days = now - timedelta(days=30)
        last_7_days = now - timedelta(days=7)

        total_users = await self._backend.count(
            "system_users", {"tenant_id": tid, "deleted_at": None}
        )
        orders = await self._backend.count(
            "orders", {"tenant_id": tid}, since=("created_at", last_30_days)
        )
        revenue = await self._backend.sum(
            "orders",
            "total_price",
            {"tenant_id": tid, "status": "completed"},
            since=("created_at", last_30_days),
        )
        audit_events = await self._backend.count(
            "audit_logs", {"tenant_id": tid}, since=("timestamp", last_7_days)
        )
        return TenantStats(
            total_users=total_users,
            orders_last_30_days=orders,
            revenue_last_30_days=float(revenue),
            audit_events_last_7_days=audit_events,
        )

    async def _ensure_settings(self, tid: uuid.UUID) -> TenantSettings:
        row = await self._backend.ensure(
            "tenant_settings", {"tenant_id": tid}, self._default_settings()
        )
        return settings_from_row(row)

    async def _role_permissions(self, tid: uuid.UUID, role: str) -> list[str]:
        # Tenant-defined role first, then the built-in one
        roles = await self._backend.select("roles", {"tenant_id": tid, "name": role})
        if not roles:
            roles = await self._backend.select("roles", {"tenant_id": None, "name": role})
        if not roles:
            return []

        links = await self._backend.select("role_permissions", {"role_id": roles[0]["id"]})
        names: list[str] = []
        for link in links:
            perms = await self._backend.select(
                "permissions", {"id": link["permission_id"]}, limit=1
            )
            names.extend(p["name"] for p in perms)
        return sorted(names)
