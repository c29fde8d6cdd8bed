"""Tenant-scoped data access for business entities.

``TenantRepository`` is the only path to tenant-scoped tables. Every
operation takes the tenant id explicitly, puts it into the filter predicate
and binds it for row-level security before touching storage, regardless of
any checks performed upstream. Records of another tenant are reported
exactly like records that do not exist.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel

from tenant_core.audit import AuditAction, AuditRecorder
from tenant_core.errors import InvalidDataError, NotFoundError, UnsafeQueryError
from tenant_core.models.records import EntityStats, MintTransaction, Order, Payment
from tenant_core.models.tenant import QuotaResource
from tenant_core.quota import QuotaManager
from tenant_core.storage.base import Row, StorageBackend, parse_tenant_id
from tenant_core.storage.orm import Base

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")

# Managed by the repository, never accepted from callers
MANAGED_COLUMNS: frozenset[str] = frozenset({"id", "tenant_id", "created_at", "updated_at"})
DEFAULT_PAGE_SIZE = 1000
TENANT_SCOPE_TOKEN = "tenant_id"


@dataclass(frozen=True)
class EntityDefinition(Generic[T]):
    """Binds a tenant-scoped table to its record model and writable columns.

    The column allowlist is checked against the ORM table when the
    definition is created, so a typo fails at import time.
    """

    table: str
    model: type[T]
    writable: frozenset[str]
    quota_resource: QuotaResource | None = None

    def __post_init__(self) -> None:
        table = Base.metadata.tables.get(self.table)
        if table is None:
            raise ValueError(f"Unknown table: {self.table}")
        if "tenant_id" not in table.columns:
            raise ValueError(f"Table {self.table} is not tenant-scoped")
        unknown = self.writable - set(table.columns.keys())
        if unknown:
            raise ValueError(f"Unknown columns for {self.table}: {sorted(unknown)}")
        managed = self.writable & MANAGED_COLUMNS
        if managed:
            raise ValueError(f"Managed columns are not writable: {sorted(managed)}")

    def check_columns(self, data: Mapping[str, Any]) -> None:
        unknown = set(data) - self.writable
        if unknown:
            raise InvalidDataError(
                f"Unknown or read-only fields for {self.table}: {sorted(unknown)}"
            )


ORDERS = EntityDefinition(
    table="orders",
    model=Order,
    writable=frozenset(
        {
            "event_id",
            "user_id",
            "quantity",
            "unit_price",
            "total_price",
            "status",
            "payment_method",
            "payment_status",
        }
    ),
    quota_resource=QuotaResource.ORDERS,
)

PAYMENTS = EntityDefinition(
    table="payments",
    model=Payment,
    writable=frozenset(
        {
            "order_id",
            "amount",
            "currency",
            "payment_method",
            "provider_transaction_id",
            "status",
            "error_message",
            "attempt_count",
            "last_attempt_at",
        }
    ),
)

MINT_TRANSACTIONS = EntityDefinition(
    table="nft_mint_transactions",
    model=MintTransaction,
    writable=frozenset(
        {
            "order_id",
            "payment_id",
            "user_id",
            "nft_contract_address",
            "nft_token_id",
            "blockchain_tx_hash",
            "status",
            "metadata",
            "error_details",
        }
    ),
)


class TenantRepository(Generic[T]):
    """Tenant-scoped CRUD for one entity type.

    Args:
        backend: Storage backend of the current unit of work.
        entity: Table, record model and column allowlist.
        quota: When given and the entity is quota-governed, creation is
            gated and counted through it.
        audit: When given, operations called with ``audit_log=True``
            append an audit entry.
    """

    def __init__(
        self,
        backend: StorageBackend,
        entity: EntityDefinition[T],
        *,
        quota: QuotaManager | None = None,
        audit: AuditRecorder | None = None,
    ) -> None:
        self._backend = backend
        self._entity = entity
        self._quota = quota
        self._audit = audit

    @property
    def table(self) -> str:
        return self._entity.table

    async def _scope(self, tenant_id: str | uuid.UUID) -> uuid.UUID:
        tid = parse_tenant_id(tenant_id)
        await self._backend.bind_tenant(str(tid))
        return tid

    def _record(self, row: Row) -> T:
        return self._entity.model.model_validate(row)

    # ── Reads ──

    async def find_all(
        self,
        tenant_id: str | uuid.UUID,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[T]:
        """All records of the tenant, newest first."""
        tid = await self._scope(tenant_id)
        rows = await self._backend.select(
            self.table,
            {"tenant_id": tid},
            limit=limit,
            offset=offset,
            order_by=[("created_at", True), ("id", True)],
        )
        return [self._record(r) for r in rows]

    async def find_by_id(self, tenant_id: str | uuid.UUID, record_id: uuid.UUID) -> T:
        """Fetch one record of the tenant.

        Raises:
            NotFoundError: Missing, or owned by another tenant.
        """
        tid = await self._scope(tenant_id)
        rows = await self._backend.select(
            self.table, {"tenant_id": tid, "id": record_id}, limit=1
        )
        if not rows:
            raise NotFoundError(self.table, record_id)
        return self._record(rows[0])

    async def count(self, tenant_id: str | uuid.UUID) -> int:
        tid = await self._scope(tenant_id)
        return await self._backend.count(self.table, {"tenant_id": tid})

    async def stats(self, tenant_id: str | uuid.UUID) -> EntityStats:
        """Total records and records created in the last 24 hours."""
        tid = await self._scope(tenant_id)
        since = datetime.now(UTC) - timedelta(hours=24)
        total = await self._backend.count(self.table, {"tenant_id": tid})
        today = await self._backend.count(
            self.table, {"tenant_id": tid}, since=("created_at", since)
        )
        return EntityStats(total_records=total, records_today=today)

    # ── Writes ──

    async def create(
        self,
        tenant_id: str | uuid.UUID,
        data: Mapping[str, Any],
        *,
        user_id: str | None = None,
        audit_log: bool = False,
    ) -> T:
        """Insert a record owned by the tenant.

        Quota-governed entities are checked before the insert and counted
        after it, inside the same transaction.

        Raises:
            InvalidDataError: ``data`` has unknown or managed columns.
            QuotaExceededError: No headroom left for the entity's resource.
        """
        self._entity.check_columns(data)
        tid = await self._scope(tenant_id)
        resource = self._entity.quota_resource if self._quota else None

        now = datetime.now(UTC)
        async with self._backend.transaction():
            if resource is not None and self._quota is not None:
                await self._quota.validate_quota(tid, resource)
            row = await self._backend.insert(
                self.table,
                {**data, "tenant_id": tid, "created_at": now, "updated_at": now},
            )
            if resource is not None and self._quota is not None:
                await self._quota.increment_quota(tid, resource)

        record = self._record(row)
        if audit_log and self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.CREATE,
                self.table,
                row["id"],
                changes=dict(data),
            )
        return record

    async def update(
        self,
        tenant_id: str | uuid.UUID,
        record_id: uuid.UUID,
        data: Mapping[str, Any],
        *,
        user_id: str | None = None,
        audit_log: bool = False,
    ) -> T:
        """Apply the supplied columns to one record of the tenant.

        Raises:
            NotFoundError: Missing or foreign record; storage is untouched.
            InvalidDataError: ``data`` has unknown or managed columns.
        """
        self._entity.check_columns(data)
        existing = await self.find_by_id(tenant_id, record_id)
        tid = existing.tenant_id

        rows = await self._backend.update(
            self.table,
            {"tenant_id": tid, "id": record_id},
            {**data, "updated_at": datetime.now(UTC)},
        )
        if not rows:
            raise NotFoundError(self.table, record_id)

        if audit_log and self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.UPDATE,
                self.table,
                record_id,
                changes=dict(data),
                previous=existing.model_dump(),
            )
        return self._record(rows[0])

    async def delete(
        self,
        tenant_id: str | uuid.UUID,
        record_id: uuid.UUID,
        *,
        user_id: str | None = None,
        audit_log: bool = False,
    ) -> bool:
        """Remove one record of the tenant.

        Returns:
            True if exactly one row was removed.

        Raises:
            NotFoundError: Missing or foreign record; storage is untouched.
        """
        existing = await self.find_by_id(tenant_id, record_id)
        tid = existing.tenant_id

        removed = await self._backend.delete(self.table, {"tenant_id": tid, "id": record_id})

        if audit_log and self._audit is not None:
            self._audit.notify_on_commit(
                self._backend,
                tid,
                user_id,
                AuditAction.DELETE,
                self.table,
                record_id,
                previous=existing.model_dump(),
            )
        return removed == 1

    # ── Escape hatches ──

    async def query(
        self,
        text: str,
        values: Mapping[str, Any] | None = None,
        *,
        validate_tenant_id: bool = False,
        tenant_id: str | uuid.UUID | None = None,
    ) -> list[Row]:
        """Run a custom parameterized statement.

        With ``validate_tenant_id`` the statement text must mention
        ``tenant_id``; this is a static text check, not a semantic one.
        When ``tenant_id`` is given it is bound for row-level security.

        Raises:
            UnsafeQueryError: Validation requested and no tenant predicate.
        """
        if validate_tenant_id and TENANT_SCOPE_TOKEN not in text.lower():
            raise UnsafeQueryError()
        if tenant_id is not None:
            await self._scope(tenant_id)
        return await self._backend.execute(text, values or {})

    async def unsafe(self, text: str, values: Mapping[str, Any] | None = None) -> list[Row]:
        """Run a statement with no tenant checks (cross-tenant admin work).

        Row-level security is lifted for this one statement, so it sees and
        writes every tenant's rows. Every call is logged as a warning.
        """
        logger.warning("unsafe_query_executed", table=self.table)
        async with self._backend.rls_bypass():
            return await self._backend.execute(text, values or {})

    async def transaction(
        self,
        tenant_id: str | uuid.UUID,
        body: Callable[[TenantRepository[T]], Awaitable[R]],
    ) -> R:
        """Await ``body(self)`` inside one atomic block.

        Usage::

            async def move(repo):
                await repo.update(tid, a, {...})
                await repo.update(tid, b, {...})

            await repo.transaction(tid, move)
        """
        await self._scope(tenant_id)
        async with self._backend.transaction():
            return await body(self)
