"""Tests for tenant self-service and onboarding endpoints."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import timedelta

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from tenant_core.auth.context import TenantContext
from tenant_core.auth.credentials import CredentialParser
from tenant_core.models.tenant import Role, TenantInfo
from tenant_core.storage.memory import MemoryProvider

AuthHeaders = Callable[..., dict[str, str]]
AUDIT_READER = frozenset({"audit:read"})


class TestOnboarding:
    async def test_create_tenant(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/tenants",
            json={"name": "Initech", "slug": "initech", "email": "it@initech.test", "plan": "pro"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "initech"
        assert data["plan"] == "pro"
        assert data["status"] == "active"
        assert data["settings"]["max_orders"] == 1000
        uuid.UUID(data["id"])

    async def test_duplicate_slug(self, client: AsyncClient, tenant: TenantInfo) -> None:
        response = await client.post(
            "/api/v1/tenants",
            json={"name": "Acme 2", "slug": "acme", "email": "x@acme.test"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_DATA"

    async def test_invalid_body(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/tenants", json={"name": "Initech", "slug": "Not A Slug"}
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_DATA"
        assert "slug" in body["message"]
        assert "email" in body["message"]


class TestAuthentication:
    async def test_no_credential(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/tenant")
        assert response.status_code == 401
        assert response.json() == {
            "error": "TENANT_REQUIRED",
            "message": "No tenant context found. Authentication required.",
        }

    async def test_garbage_token(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/tenant", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    async def test_expired_token(
        self,
        client: AsyncClient,
        credential_parser: CredentialParser,
        tenant: TenantInfo,
    ) -> None:
        token = credential_parser.issue_token(
            TenantContext(tenant_id=str(tenant.id), user_id="u"),
            expires_in=timedelta(seconds=-30),
        )
        response = await client.get(
            "/api/v1/tenant", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "TOKEN_EXPIRED"

    async def test_wrong_secret(self, client: AsyncClient, tenant: TenantInfo) -> None:
        forged = CredentialParser("some-other-secret-that-is-long-enough").issue_token(
            TenantContext(tenant_id=str(tenant.id), user_id="u", role=Role.ADMIN)
        )
        response = await client.get(
            "/api/v1/tenant", headers={"Authorization": f"Bearer {forged}"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    async def test_token_without_tenant(
        self, client: AsyncClient, credential_parser: CredentialParser
    ) -> None:
        token = credential_parser.issue_token(TenantContext(tenant_id="", user_id=""))
        response = await client.get(
            "/api/v1/tenant", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json() == {
            "error": "INVALID_TOKEN",
            "message": "Token does not contain tenant_id",
        }


class TestTenantInfo:
    async def test_get_own_tenant(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get("/api/v1/tenant", headers=auth_headers(tenant))
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(tenant.id)
        assert data["name"] == "Acme Events"
        assert data["settings"]["data_residency"] == "global"

    async def test_unknown_tenant(self, client: AsyncClient, auth_headers: AuthHeaders) -> None:
        response = await client.get(
            "/api/v1/tenant", headers=auth_headers(str(uuid.uuid4()))
        )
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestSettings:
    async def test_get_settings(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get("/api/v1/tenant/settings", headers=auth_headers(tenant))
        assert response.status_code == 200
        assert response.json()["features"] == []

    async def test_viewer_cannot_update(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.patch(
            "/api/v1/tenant/settings",
            json={"max_orders": 5000},
            headers=auth_headers(tenant, role=Role.VIEWER),
        )
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "INSUFFICIENT_PERMISSIONS"
        assert "admin" in body["message"]

    async def test_admin_updates(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        headers = auth_headers(tenant, role=Role.ADMIN)
        response = await client.patch(
            "/api/v1/tenant/settings",
            json={"max_orders": 5000, "features": ["nft_minting"]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["max_orders"] == 5000

        reread = await client.get("/api/v1/tenant/settings", headers=headers)
        assert reread.json()["features"] == ["nft_minting"]
        assert reread.json()["max_users"] == 10

    async def test_invalid_update(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.patch(
            "/api/v1/tenant/settings",
            json={"max_users": -5},
            headers=auth_headers(tenant, role=Role.ADMIN),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_DATA"


class TestQuotas:
    async def test_calls_are_metered(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        headers = auth_headers(tenant)
        await client.get("/api/v1/tenant", headers=headers)
        response = await client.get("/api/v1/tenant/quotas", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["used_api_calls"] == 2
        assert data["api_calls_per_day"] == 10_000

    async def test_daily_limit_exhausted(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        provider: MemoryProvider,
        tenant: TenantInfo,
    ) -> None:
        async with provider.unit_of_work() as backend:
            await backend.update(
                "tenant_quotas",
                {"tenant_id": tenant.id},
                {"used_api_calls": 10_000, "api_calls_per_day": 10_000},
            )

        response = await client.get("/api/v1/tenant", headers=auth_headers(tenant))

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "QUOTA_EXCEEDED"
        assert "api_calls" in body["message"]

    async def test_unauthenticated_not_metered(
        self, client: AsyncClient, provider: MemoryProvider, tenant: TenantInfo
    ) -> None:
        await client.get("/api/v1/tenant")
        async with provider.unit_of_work() as backend:
            rows = await backend.select("tenant_quotas", {"tenant_id": tenant.id})
        assert rows[0]["used_api_calls"] == 0


class TestManagerEndpoints:
    @pytest.mark.parametrize("path", ["/api/v1/tenant/users", "/api/v1/tenant/stats"])
    async def test_user_role_forbidden(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo, path: str
    ) -> None:
        response = await client.get(path, headers=auth_headers(tenant, role=Role.USER))
        assert response.status_code == 403
        assert response.json()["error"] == "INSUFFICIENT_PERMISSIONS"

    async def test_users(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        provider: MemoryProvider,
        tenant: TenantInfo,
    ) -> None:
        async with provider.unit_of_work() as backend:
            await backend.insert(
                "system_users",
                {"tenant_id": tenant.id, "email": "mia@acme.test", "name": "Mia", "role": "manager"},
            )

        response = await client.get(
            "/api/v1/tenant/users", headers=auth_headers(tenant, role=Role.MANAGER)
        )

        assert response.status_code == 200
        users = response.json()
        assert [u["email"] for u in users] == ["mia@acme.test"]
        assert users[0]["permissions"] == []

    async def test_stats(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get(
            "/api/v1/tenant/stats", headers=auth_headers(tenant, role=Role.ADMIN)
        )
        assert response.status_code == 200
        assert response.json() == {
            "total_users": 0,
            "orders_last_30_days": 0,
            "revenue_last_30_days": 0.0,
            "audit_events_last_7_days": 0,
        }


class TestAuditLogs:
    async def test_settings_change_listed(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        tenant: TenantInfo,
    ) -> None:
        headers = auth_headers(tenant, role=Role.ADMIN, user_id="admin-7")
        await client.patch("/api/v1/tenant/settings", json={"max_events": 5}, headers=headers)
        await app.state.audit.drain()

        response = await client.get(
            "/api/v1/tenant/audit-logs",
            params={"action": "UPDATE_SETTINGS"},
            headers=auth_headers(
                tenant, role=Role.ADMIN, user_id="admin-7", permissions=AUDIT_READER
            ),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["limit"] == 50
        assert data["offset"] == 0
        assert len(data["items"]) == 1
        entry = data["items"][0]
        assert entry["user_id"] == "admin-7"
        assert entry["changes"] == {"max_events": 5}
        assert entry["previous"]["max_events"] == 100

    async def test_other_tenant_entries_hidden(
        self,
        app: FastAPI,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        tenant: TenantInfo,
        other_tenant: TenantInfo,
    ) -> None:
        await client.patch(
            "/api/v1/tenant/settings",
            json={"max_events": 5},
            headers=auth_headers(tenant, role=Role.ADMIN),
        )
        await app.state.audit.drain()

        response = await client.get(
            "/api/v1/tenant/audit-logs",
            headers=auth_headers(other_tenant, role=Role.MANAGER, permissions=AUDIT_READER),
        )
        assert response.json()["items"] == []

    async def test_limit_validated(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get(
            "/api/v1/tenant/audit-logs",
            params={"limit": 0},
            headers=auth_headers(tenant, permissions=AUDIT_READER),
        )
        assert response.status_code == 400

    async def test_permission_required(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get(
            "/api/v1/tenant/audit-logs", headers=auth_headers(tenant, role=Role.ADMIN)
        )
        assert response.status_code == 403
        assert response.json()["error"] == "INSUFFICIENT_PERMISSIONS"

    async def test_permission_suffices_without_elevated_role(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get(
            "/api/v1/tenant/audit-logs",
            headers=auth_headers(tenant, role=Role.USER, permissions=AUDIT_READER),
        )
        assert response.status_code == 200
