"""Tests for request-scoped dependencies."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

import structlog
from fastapi import Depends, FastAPI, Request
from httpx import AsyncClient

from tenant_core.api.deps import RequirePermission, get_optional_tenant
from tenant_core.auth.context import TenantContext
from tenant_core.models.tenant import TenantInfo

AuthHeaders = Callable[..., dict[str, str]]


def _add_dependency_routes(app: FastAPI) -> None:
    @app.get("/deps/optional")
    async def _optional(
        request: Request,
        ctx: Annotated[TenantContext | None, Depends(get_optional_tenant)],
    ) -> dict[str, Any]:
        return {
            "tenant_id": ctx.tenant_id if ctx else None,
            "state": request.state.tenant_context is ctx,
            "log_context": structlog.contextvars.get_contextvars(),
        }

    @app.get("/deps/orders-write")
    async def _orders_write(
        ctx: Annotated[TenantContext, Depends(RequirePermission("orders:write"))],
    ) -> dict[str, str]:
        return {"user_id": ctx.user_id}


class TestOptionalTenant:
    async def test_anonymous(self, app: FastAPI, client: AsyncClient) -> None:
        _add_dependency_routes(app)
        response = await client.get("/deps/optional")
        data = response.json()
        assert (data["tenant_id"], data["state"]) == (None, True)
        assert set(data["log_context"]) == {"request_id"}

    async def test_authenticated_binds_log_context(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        tenant: TenantInfo,
    ) -> None:
        _add_dependency_routes(app)
        response = await client.get(
            "/deps/optional", headers=auth_headers(tenant, user_id="u-9")
        )
        data = response.json()
        assert data["tenant_id"] == str(tenant.id)
        assert data["state"] is True
        assert data["log_context"]["tenant_id"] == str(tenant.id)
        assert data["log_context"]["user_id"] == "u-9"

    async def test_other_scheme_is_anonymous(self, app: FastAPI, client: AsyncClient) -> None:
        _add_dependency_routes(app)
        response = await client.get(
            "/deps/optional", headers={"Authorization": "Basic dXNlcjpwYXNz"}
        )
        assert response.json()["tenant_id"] is None


class TestRequirePermission:
    async def test_granted(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        tenant: TenantInfo,
    ) -> None:
        _add_dependency_routes(app)
        response = await client.get(
            "/deps/orders-write",
            headers=auth_headers(tenant, permissions=frozenset({"orders:write"})),
        )
        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1"}

    async def test_denied(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        tenant: TenantInfo,
    ) -> None:
        _add_dependency_routes(app)
        response = await client.get(
            "/deps/orders-write",
            headers=auth_headers(tenant, permissions=frozenset({"orders:read"})),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "INSUFFICIENT_PERMISSIONS"
