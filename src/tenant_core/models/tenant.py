"""Tenant, settings, quota and user schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class Plan(StrEnum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    CUSTOM = "custom"


class TenantStatus(StrEnum):
    """Lifecycle of a tenant. ``deleted`` is a soft delete."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class DataResidency(StrEnum):
    US = "us"
    EU = "eu"
    ASIA = "asia"
    GLOBAL = "global"


class QuotaResource(StrEnum):
    """Resources governed by a used/max counter pair."""

    USERS = "users"
    ORDERS = "orders"
    EVENTS = "events"
    STORAGE = "storage"
    API_CALLS = "api_calls"


# resource -> (max column, used column) in tenant_quotas
QUOTA_COLUMNS: dict[QuotaResource, tuple[str, str]] = {
    QuotaResource.USERS: ("max_users", "used_users"),
    QuotaResource.ORDERS: ("max_orders", "used_orders"),
    QuotaResource.EVENTS: ("max_events", "used_events"),
    QuotaResource.STORAGE: ("storage_quota_mb", "used_storage_mb"),
    QuotaResource.API_CALLS: ("api_calls_per_day", "used_api_calls"),
}


class TenantSettings(BaseModel):
    """Per-tenant feature and limit configuration."""

    model_config = ConfigDict(from_attributes=True)

    max_users: int = 10
    max_orders: int = 1000
    max_events: int = 100
    features: list[str] = Field(default_factory=list)
    webhook_url: str | None = None
    custom_domain: str | None = None
    data_residency: DataResidency = DataResidency.GLOBAL
    encryption_enabled: bool = False


class TenantSettingsUpdate(BaseModel):
    """Partial settings update; ``None`` keeps the stored value."""

    max_users: int | None = Field(default=None, ge=0)
    max_orders: int | None = Field(default=None, ge=0)
    max_events: int | None = Field(default=None, ge=0)
    features: list[str] | None = None
    webhook_url: str | None = None
    custom_domain: str | None = None
    data_residency: DataResidency | None = None
    encryption_enabled: bool | None = None


class TenantInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    email: str
    plan: Plan
    status: TenantStatus
    created_at: datetime
    updated_at: datetime
    settings: TenantSettings | None = None


class TenantQuota(BaseModel):
    """Usage counters and ceilings for one tenant."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: uuid.UUID
    max_users: int
    used_users: int = 0
    max_orders: int
    used_orders: int = 0
    max_events: int
    used_events: int = 0
    storage_quota_mb: int
    used_storage_mb: int = 0
    api_calls_per_day: int
    used_api_calls: int = 0
    reset_date: datetime

    def usage(self, resource: QuotaResource) -> tuple[int, int]:
        """Return ``(used, max)`` for a resource."""
        max_col, used_col = QUOTA_COLUMNS[resource]
        return getattr(self, used_col), getattr(self, max_col)


class TenantUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    name: str
    role: Role
    permissions: list[str] = Field(default_factory=list)
    status: str
    created_at: datetime
    updated_at: datetime
    last_login: datetime | None = None


class TenantStats(BaseModel):
    total_users: int
    orders_last_30_days: int
    revenue_last_30_days: float
    audit_events_last_7_days: int


class TenantCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    email: str = Field(min_length=3, max_length=255)
    plan: Plan = Plan.FREE


def settings_from_row(row: dict[str, Any]) -> TenantSettings:
    """Build settings from a ``tenant_settings`` row, ignoring bookkeeping."""
    return TenantSettings.model_validate(
        {k: v for k, v in row.items() if k in TenantSettings.model_fields}
    )
