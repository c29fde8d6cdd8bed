"""Append-only audit trail.

Audit writes are best-effort: each entry is written in its own unit of
work, outside the transaction of the operation it describes, and a failed
write is logged and discarded. Entries describing a change are queued on
the change's backend and only scheduled once that unit of work commits,
so rolled-back work leaves no trace in the trail. The primary operation
never fails or rolls back because of the audit trail.
"""

from __future__ import annotations

import asyncio
import functools
import uuid
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic_core import to_jsonable_python

from tenant_core.models.records import AuditLogEntry, AuditStatus
from tenant_core.storage.base import StorageBackend, StorageProvider, parse_tenant_id

logger = structlog.get_logger()

AUDIT_TABLE = "audit_logs"
SYSTEM_USER = "system"


class AuditAction:
    """Action names written by the core."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE_TENANT = "CREATE_TENANT"
    UPDATE_SETTINGS = "UPDATE_SETTINGS"
    SUSPEND_TENANT = "SUSPEND_TENANT"
    DELETE_TENANT = "DELETE_TENANT"


def _json_safe(value: dict[str, Any] | None) -> dict[str, Any] | None:
    if value is None:
        return None
    return to_jsonable_python(value)  # type: ignore[no-any-return]


class AuditRecorder:
    """Writes and lists audit entries through a storage provider.

    Args:
        provider: Provider used to open a dedicated unit of work per entry.
    """

    def __init__(self, provider: StorageProvider) -> None:
        self._provider = provider
        self._pending: set[asyncio.Task[None]] = set()

    async def record(
        self,
        tenant_id: str | uuid.UUID,
        user_id: str | None,
        action: str,
        resource: str,
        resource_id: str | uuid.UUID | None = None,
        changes: dict[str, Any] | None = None,
        previous: dict[str, Any] | None = None,
        *,
        status: AuditStatus = AuditStatus.SUCCESS,
        error: str | None = None,
    ) -> None:
        """Append one entry. Never raises."""
        try:
            tid = parse_tenant_id(tenant_id)
            async with self._provider.unit_of_work() as backend:
                await backend.bind_tenant(str(tid))
                await backend.insert(
                    AUDIT_TABLE,
                    {
                        "tenant_id": tid,
                        "user_id": user_id or SYSTEM_USER,
                        "action": action,
                        "resource": resource,
                        "resource_id": str(resource_id) if resource_id else None,
                        "changes": _json_safe(changes),
                        "previous": _json_safe(previous),
                        "status": str(status),
                        "error": error,
                        "timestamp": datetime.now(UTC),
                    },
                )
        except Exception:
            logger.exception(
                "audit_record_failed",
                tenant_id=str(tenant_id),
                action=action,
                resource=resource,
                resource_id=str(resource_id) if resource_id else None,
            )

    def notify(
        self,
        tenant_id: str | uuid.UUID,
        user_id: str | None,
        action: str,
        resource: str,
        resource_id: str | uuid.UUID | None = None,
        changes: dict[str, Any] | None = None,
        previous: dict[str, Any] | None = None,
        *,
        status: AuditStatus = AuditStatus.SUCCESS,
        error: str | None = None,
    ) -> None:
        """Schedule ``record`` without waiting for it."""
        task = asyncio.create_task(
            self.record(
                tenant_id,
                user_id,
                action,
                resource,
                resource_id,
                changes,
                previous,
                status=status,
                error=error,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def notify_on_commit(
        self, backend: StorageBackend, *args: Any, **kwargs: Any
    ) -> None:
        """Call ``notify`` with these arguments once ``backend`` commits.

        Nothing is written if the unit of work, or the enclosing
        ``transaction()``, rolls back.
        """
        backend.after_commit(functools.partial(self.notify, *args, **kwargs))

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled entry has been written (or dropped)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def list_entries(
        self,
        tenant_id: str | uuid.UUID,
        *,
        limit: int = 50,
        offset: int = 0,
        action: str | None = None,
        resource: str | None = None,
    ) -> list[AuditLogEntry]:
        """List a tenant's entries, newest first.

        Args:
            tenant_id: Tenant to list for.
            limit: Maximum entries to return.
            offset: Number of entries to skip.
            action: Filter by action name.
            resource: Filter by resource name.

        Returns:
            Matching audit entries.
        """
        tid = parse_tenant_id(tenant_id)
        where: dict[str, Any] = {"tenant_id": tid}
        if action:
            where["action"] = action
        if resource:
            where["resource"] = resource

        async with self._provider.unit_of_work() as backend:
            await backend.bind_tenant(str(tid))
            rows = await backend.select(
                AUDIT_TABLE,
                where,
                limit=limit,
                offset=offset,
                order_by=[("timestamp", True)],
            )
        return [AuditLogEntry.model_validate(row) for row in rows]
