"""Tests for tenant-scoped order endpoints."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

import pytest
from httpx import AsyncClient

from tenant_core.models.records import Order
from tenant_core.models.tenant import TenantInfo
from tenant_core.storage.memory import MemoryProvider
from tenant_core.storage.repository import ORDERS, TenantRepository

AuthHeaders = Callable[..., dict[str, str]]
OrderData = Callable[..., dict[str, Any]]


@pytest.fixture()
def seed_order(
    provider: MemoryProvider, order_data: OrderData
) -> Callable[..., Any]:
    async def seed(tenant: TenantInfo, **overrides: Any) -> Order:
        async with provider.unit_of_work() as backend:
            return await TenantRepository(backend, ORDERS).create(
                tenant.id, order_data(**overrides)
            )

    return seed


class TestListOrders:
    async def test_only_own_orders(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        seed_order: Callable[..., Any],
        tenant: TenantInfo,
        other_tenant: TenantInfo,
    ) -> None:
        mine = await seed_order(tenant)
        await seed_order(other_tenant)

        response = await client.get("/api/v1/orders", headers=auth_headers(tenant))

        assert response.status_code == 200
        items = response.json()["items"]
        assert [i["id"] for i in items] == [str(mine.id)]
        assert items[0]["tenant_id"] == str(tenant.id)

    async def test_paging(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        seed_order: Callable[..., Any],
        tenant: TenantInfo,
    ) -> None:
        for i in range(3):
            await seed_order(tenant, quantity=i + 1)

        response = await client.get(
            "/api/v1/orders", params={"limit": 2, "offset": 2}, headers=auth_headers(tenant)
        )

        data = response.json()
        assert (data["limit"], data["offset"]) == (2, 2)
        assert len(data["items"]) == 1

    async def test_requires_authentication(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/orders")
        assert response.status_code == 401


class TestGetOrder:
    async def test_own_order(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        seed_order: Callable[..., Any],
        tenant: TenantInfo,
    ) -> None:
        order = await seed_order(tenant, status="completed")

        response = await client.get(f"/api/v1/orders/{order.id}", headers=auth_headers(tenant))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["total_price"] == "50.00"

    async def test_other_tenants_order_is_not_found(
        self,
        client: AsyncClient,
        auth_headers: AuthHeaders,
        seed_order: Callable[..., Any],
        tenant: TenantInfo,
        other_tenant: TenantInfo,
    ) -> None:
        order = await seed_order(tenant)

        foreign = await client.get(
            f"/api/v1/orders/{order.id}", headers=auth_headers(other_tenant)
        )
        missing = await client.get(
            f"/api/v1/orders/{uuid.uuid4()}", headers=auth_headers(other_tenant)
        )

        assert foreign.status_code == missing.status_code == 404
        assert foreign.json()["error"] == missing.json()["error"] == "NOT_FOUND"
        assert str(tenant.id) not in foreign.text

    async def test_malformed_id(
        self, client: AsyncClient, auth_headers: AuthHeaders, tenant: TenantInfo
    ) -> None:
        response = await client.get("/api/v1/orders/not-a-uuid", headers=auth_headers(tenant))
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_DATA"
