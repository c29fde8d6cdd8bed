"""Per-tenant quota tracking and enforcement.

Counters live in ``tenant_quotas`` and are only ever changed by single
atomic statements (``used = GREATEST(used + n, 0)``), never by
read-modify-write in Python. A missing row is materialized with the
configured defaults on first access.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from tenant_core.config import Settings, get_settings
from tenant_core.errors import InvalidDataError, QuotaExceededError
from tenant_core.models.tenant import QUOTA_COLUMNS, QuotaResource, TenantQuota
from tenant_core.storage.base import Row, StorageBackend, parse_tenant_id

logger = structlog.get_logger()

QUOTA_TABLE = "tenant_quotas"


def default_quota_values(settings: Settings, now: datetime) -> dict[str, Any]:
    """Column values for a freshly created quota row."""
    return {
        "max_users": settings.default_max_users,
        "used_users": 0,
        "max_orders": settings.default_max_orders,
        "used_orders": 0,
        "max_events": settings.default_max_events,
        "used_events": 0,
        "storage_quota_mb": settings.default_storage_quota_mb,
        "used_storage_mb": 0,
        "api_calls_per_day": settings.default_api_calls_per_day,
        "used_api_calls": 0,
        "reset_date": now + timedelta(hours=settings.quota_reset_period_hours),
    }


def parse_resource(resource: QuotaResource | str) -> QuotaResource:
    try:
        return QuotaResource(resource)
    except ValueError:
        raise InvalidDataError(f"Unknown quota resource: {resource}") from None


def next_reset_date(reset_date: datetime, now: datetime, period: timedelta) -> datetime:
    """Advance ``reset_date`` by whole periods until it lies after ``now``."""
    if now < reset_date:
        return reset_date
    elapsed_periods = (now - reset_date) // period + 1
    return reset_date + elapsed_periods * period


class QuotaManager:
    """Quota reads, checks and increments within one unit of work.

    Args:
        backend: Storage backend of the current unit of work.
        settings: Source of default limits and the reset period.
    """

    def __init__(self, backend: StorageBackend, settings: Settings | None = None) -> None:
        self._backend = backend
        self._settings = settings or get_settings()

    @property
    def reset_period(self) -> timedelta:
        return timedelta(hours=self._settings.quota_reset_period_hours)

    async def get_quota(self, tenant_id: str | uuid.UUID) -> TenantQuota:
        """Current quota for a tenant, materializing defaults if absent."""
        tid = parse_tenant_id(tenant_id)
        row = await self._ensure_row(tid)
        row = await self._rollover(tid, row)
        return TenantQuota.model_validate(row)

    async def validate_quota(
        self, tenant_id: str | uuid.UUID, resource: QuotaResource | str
    ) -> TenantQuota:
        """Fail if the tenant has no headroom left for ``resource``.

        Raises:
            QuotaExceededError: ``used >= max``.
            InvalidDataError: Unknown resource name.
        """
        res = parse_resource(resource)
        quota = await self.get_quota(tenant_id)
        used, limit = quota.usage(res)
        if used >= limit:
            logger.warning(
                "quota_exceeded",
                tenant_id=str(tenant_id),
                resource=str(res),
                used=used,
                limit=limit,
            )
            raise QuotaExceededError(str(res), used, limit)
        return quota

    async def increment_quota(
        self,
        tenant_id: str | uuid.UUID,
        resource: QuotaResource | str,
        amount: int = 1,
    ) -> TenantQuota:
        """Atomically add ``amount`` (may be negative) to the used counter.

        The counter never drops below zero.
        """
        res = parse_resource(resource)
        tid = parse_tenant_id(tenant_id)
        row = await self._ensure_row(tid)
        if res == QuotaResource.API_CALLS:
            await self._rollover(tid, row)

        _, used_col = QUOTA_COLUMNS[res]
        updated = await self._backend.increment(
            QUOTA_TABLE,
            {"tenant_id": tid},
            used_col,
            amount,
            extra={"updated_at": datetime.now(UTC)},
        )
        if updated is None:
            # Row vanished between ensure and update (tenant hard-deleted)
            raise InvalidDataError(f"No quota row for tenant {tid}")
        logger.debug(
            "quota_incremented", tenant_id=str(tid), resource=str(res), amount=amount
        )
        return TenantQuota.model_validate(updated)

    async def check_and_increment(
        self,
        tenant_id: str | uuid.UUID,
        resource: QuotaResource | str,
        amount: int = 1,
    ) -> TenantQuota:
        """``validate_quota`` followed by ``increment_quota``."""
        await self.validate_quota(tenant_id, resource)
        return await self.increment_quota(tenant_id, resource, amount)

    async def _ensure_row(self, tid: uuid.UUID) -> Row:
        return await self._backend.ensure(
            QUOTA_TABLE,
            {"tenant_id": tid},
            default_quota_values(self._settings, datetime.now(UTC)),
        )

    async def _rollover(self, tid: uuid.UUID, row: Row) -> Row:
        now = datetime.now(UTC)
        old_reset: datetime = row["reset_date"]
        if now < old_reset:
            return row

        new_reset = next_reset_date(old_reset, now, self.reset_period)
        # Compare-and-swap on the old reset date: concurrent rollovers apply once
        updated = await self._backend.update(
            QUOTA_TABLE,
            {"tenant_id": tid, "reset_date": old_reset},
            {"used_api_calls": 0, "reset_date": new_reset, "updated_at": now},
        )
        if updated:
            logger.info(
                "quota_api_calls_reset",
                tenant_id=str(tid),
                reset_date=new_reset.isoformat(),
            )
            return updated[0]

        rows = await self._backend.select(QUOTA_TABLE, {"tenant_id": tid})
        return rows[0]
