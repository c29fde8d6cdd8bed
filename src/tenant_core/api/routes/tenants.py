"""Tenant self-service and onboarding endpoints."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query

from tenant_core.api.deps import (
    RequirePermission,
    RequireRole,
    get_audit,
    get_current_tenant,
    get_settings,
    get_storage,
)
from tenant_core.api.schemas import ERROR_RESPONSES, AuditLogListResponse
from tenant_core.audit import AuditRecorder
from tenant_core.auth.context import TenantContext
from tenant_core.config import Settings
from tenant_core.models.tenant import (
    Role,
    TenantCreateRequest,
    TenantInfo,
    TenantQuota,
    TenantSettings,
    TenantSettingsUpdate,
    TenantStats,
    TenantUser,
)
from tenant_core.storage.base import StorageBackend
from tenant_core.tenant_service import TenantService

logger = structlog.get_logger()

AUDIT_READ = "audit:read"

router = APIRouter(tags=["tenants"], responses=ERROR_RESPONSES)

StorageDep = Annotated[StorageBackend, Depends(get_storage)]
AuditDep = Annotated[AuditRecorder, Depends(get_audit)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
TenantDep = Annotated[TenantContext, Depends(get_current_tenant)]
AdminDep = Annotated[TenantContext, Depends(RequireRole(Role.ADMIN))]
ManagerDep = Annotated[TenantContext, Depends(RequireRole(Role.ADMIN, Role.MANAGER))]
AuditReaderDep = Annotated[TenantContext, Depends(RequirePermission(AUDIT_READ))]


def _service(backend: StorageBackend, audit: AuditRecorder, settings: Settings) -> TenantService:
    return TenantService(backend, audit=audit, settings=settings)


@router.post("/tenants", status_code=201)
async def create_tenant(
    body: TenantCreateRequest,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantInfo:
    """Onboard a new tenant. Public endpoint."""
    service = _service(backend, audit, settings)
    return await service.create_tenant(body.name, body.slug, body.email, body.plan)


@router.get("/tenant")
async def get_tenant(
    tenant: TenantDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantInfo:
    return await _service(backend, audit, settings).get_tenant_info(tenant.tenant_id)


@router.get("/tenant/settings")
async def get_tenant_settings(
    tenant: TenantDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantSettings:
    return await _service(backend, audit, settings).get_tenant_settings(tenant.tenant_id)


@router.patch("/tenant/settings")
async def update_tenant_settings(
    body: TenantSettingsUpdate,
    tenant: AdminDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantSettings:
    """Partially update settings. Admin only."""
    service = _service(backend, audit, settings)
    return await service.update_tenant_settings(
        tenant.tenant_id, body, user_id=tenant.user_id
    )


@router.get("/tenant/quotas")
async def get_tenant_quotas(
    tenant: TenantDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantQuota:
    return await _service(backend, audit, settings).get_quotas(tenant.tenant_id)


@router.get("/tenant/users")
async def get_tenant_users(
    tenant: ManagerDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> list[TenantUser]:
    return await _service(backend, audit, settings).get_tenant_users(tenant.tenant_id)


@router.get("/tenant/stats")
async def get_tenant_stats(
    tenant: ManagerDep,
    backend: StorageDep,
    audit: AuditDep,
    settings: SettingsDep,
) -> TenantStats:
    return await _service(backend, audit, settings).get_tenant_stats(tenant.tenant_id)


@router.get("/tenant/audit-logs")
async def list_audit_logs(
    tenant: AuditReaderDep,
    audit: AuditDep,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    action: str | None = None,
    resource: str | None = None,
) -> AuditLogListResponse:
    """Audit trail of the caller's tenant, newest first. Needs ``audit:read``."""
    entries = await audit.list_entries(
        tenant.tenant_id, limit=limit, offset=offset, action=action, resource=resource
    )
    return AuditLogListResponse(items=entries, limit=limit, offset=offset)
