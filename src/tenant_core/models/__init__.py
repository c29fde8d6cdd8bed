"""Pydantic schemas for tenant-core domain models."""

from tenant_core.models.records import (
    AuditLogEntry,
    AuditStatus,
    EntityStats,
    MintTransaction,
    Order,
    Payment,
)
from tenant_core.models.tenant import (
    Plan,
    QuotaResource,
    Role,
    TenantInfo,
    TenantQuota,
    TenantSettings,
    TenantStatus,
)

__all__ = [
    "AuditLogEntry",
    "AuditStatus",
    "EntityStats",
    "MintTransaction",
    "Order",
    "Payment",
    "Plan",
    "QuotaResource",
    "Role",
    "TenantInfo",
    "TenantQuota",
    "TenantSettings",
    "TenantStatus",
]
