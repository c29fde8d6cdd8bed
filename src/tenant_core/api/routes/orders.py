"""Read-only order endpoints, scoped to the caller's tenant."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from tenant_core.api.deps import get_current_tenant, get_storage
from tenant_core.api.schemas import ERROR_RESPONSES, OrderListResponse
from tenant_core.auth.context import TenantContext
from tenant_core.models.records import Order
from tenant_core.storage.base import StorageBackend
from tenant_core.storage.repository import ORDERS, TenantRepository

router = APIRouter(tags=["orders"], responses=ERROR_RESPONSES)

StorageDep = Annotated[StorageBackend, Depends(get_storage)]
TenantDep = Annotated[TenantContext, Depends(get_current_tenant)]


@router.get("/orders")
async def list_orders(
    tenant: TenantDep,
    backend: StorageDep,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> OrderListResponse:
    repo = TenantRepository(backend, ORDERS)
    items = await repo.find_all(tenant.tenant_id, limit=limit, offset=offset)
    return OrderListResponse(items=items, limit=limit, offset=offset)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: uuid.UUID,
    tenant: TenantDep,
    backend: StorageDep,
) -> Order:
    """Another tenant's order answers 404, same as a missing one."""
    return await TenantRepository(backend, ORDERS).find_by_id(tenant.tenant_id, order_id)
