"""Records of tenant-scoped entities returned by the data-access layer."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class AuditStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class TenantScopedRecord(BaseModel):
    """Common columns of every tenant-scoped row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class Order(TenantScopedRecord):
    event_id: uuid.UUID
    user_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    status: str
    payment_method: str | None = None
    payment_status: str | None = None


class Payment(TenantScopedRecord):
    order_id: uuid.UUID
    amount: Decimal
    currency: str
    payment_method: str
    provider_transaction_id: str | None = None
    status: str
    error_message: str | None = None
    attempt_count: int = 1
    last_attempt_at: datetime | None = None


class MintTransaction(TenantScopedRecord):
    order_id: uuid.UUID
    payment_id: uuid.UUID | None = None
    user_id: uuid.UUID
    nft_contract_address: str | None = None
    nft_token_id: str | None = None
    blockchain_tx_hash: str | None = None
    status: str
    metadata: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None


class AuditLogEntry(BaseModel):
    """One append-only audit trail row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: str
    action: str
    resource: str
    resource_id: str | None = None
    changes: dict[str, Any] | None = None
    previous: dict[str, Any] | None = None
    status: AuditStatus = AuditStatus.SUCCESS
    error: str | None = None
    timestamp: datetime


class EntityStats(BaseModel):
    """Row counts of one tenant-scoped table for a tenant."""

    total_records: int
    records_today: int
