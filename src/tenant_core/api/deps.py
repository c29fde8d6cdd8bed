"""FastAPI dependency injection."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any, cast

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tenant_core.audit import AuditRecorder
from tenant_core.auth.context import TenantContext
from tenant_core.auth.credentials import CredentialParser
from tenant_core.auth.guard import require_context, require_permission, require_role
from tenant_core.config import Settings
from tenant_core.models.tenant import QuotaResource, Role
from tenant_core.quota import QuotaManager
from tenant_core.storage.base import StorageBackend, StorageProvider

__all__ = [
    "RequirePermission",
    "RequireRole",
    "get_audit",
    "get_current_tenant",
    "get_optional_tenant",
    "get_settings",
    "get_storage",
]

bearer_scheme = HTTPBearer(auto_error=False)


async def get_settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


async def get_audit(request: Request) -> AuditRecorder:
    """Retrieve AuditRecorder from app state.

    Initialized during lifespan startup.
    """
    return cast(AuditRecorder, request.app.state.audit)


async def get_storage(request: Request) -> AsyncIterator[StorageBackend]:
    """One unit of work per request; committed when the handler succeeds."""
    provider = cast(StorageProvider, request.app.state.provider)
    async with provider.unit_of_work() as backend:
        yield backend


async def get_optional_tenant(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> TenantContext | None:
    """Parse the bearer credential, if any.

    No credential yields None (public endpoints). A present but invalid
    credential fails the request before any handler runs.
    """
    parser = cast(CredentialParser, request.app.state.credential_parser)
    ctx = parser.parse(credentials.credentials if credentials else None)
    request.state.tenant_context = ctx
    if ctx is not None:
        structlog.contextvars.bind_contextvars(
            tenant_id=ctx.tenant_id, user_id=ctx.user_id
        )
    return ctx


_optional_tenant_dep = Depends(get_optional_tenant)


async def get_current_tenant(
    request: Request,
    ctx: TenantContext | None = _optional_tenant_dep,
) -> TenantContext:
    """Require an authenticated tenant and meter the call.

    Each authenticated call counts against the tenant's daily api_calls
    quota, in its own unit of work so a failing handler still counts.

    Raises:
        ContextRequiredError: No credential.
        QuotaExceededError: Daily api_calls exhausted.
    """
    ctx = require_context(ctx)
    provider = cast(StorageProvider, request.app.state.provider)
    settings = cast(Settings, request.app.state.settings)
    async with provider.unit_of_work() as backend:
        await QuotaManager(backend, settings).check_and_increment(
            ctx.tenant_id, QuotaResource.API_CALLS
        )
    return ctx


_tenant_dep = Depends(get_current_tenant)


def RequireRole(  # noqa: N802
    *roles: Role | str,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: require one of ``roles``.

    Usage as parameter dependency (returns TenantContext)::

        async def endpoint(
            tenant: TenantContext = Depends(RequireRole(Role.ADMIN)),
        ): ...

    Raises:
        InsufficientPermissionsError: Role not allowed.
    """

    async def _check_role(tenant: TenantContext = _tenant_dep) -> TenantContext:
        return require_role(tenant, roles)

    return _check_role


def RequirePermission(  # noqa: N802
    *permissions: str,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: require at least one of ``permissions``.

    Raises:
        InsufficientPermissionsError: None of the permissions held.
    """

    async def _check_permission(tenant: TenantContext = _tenant_dep) -> TenantContext:
        return require_permission(tenant, permissions)

    return _check_permission
