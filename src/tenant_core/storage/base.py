"""Storage interface shared by the in-memory and PostgreSQL backends.

Backends operate on plain rows (``dict[str, Any]``) of the tables defined in
``storage.orm``. Callers only ever pass column names that were validated
against the ORM metadata; values are always bound as parameters.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from tenant_core.errors import MissingTenantError

Row = dict[str, Any]


def parse_tenant_id(tenant_id: str | uuid.UUID | None) -> uuid.UUID:
    """Normalize a tenant id, rejecting empty or malformed values.

    Raises:
        MissingTenantError: Empty or not a UUID.
    """
    if isinstance(tenant_id, uuid.UUID):
        return tenant_id
    if not tenant_id:
        raise MissingTenantError("Tenant id is required")
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError:
        raise MissingTenantError("Tenant id is not valid") from None


class StorageBackend(Protocol):
    """Row operations within one unit of work."""

    async def bind_tenant(self, tenant_id: str | None) -> None:
        """Bind the current tenant for row-level security (None unbinds)."""
        ...

    async def select(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: Sequence[tuple[str, bool]] = (),
    ) -> list[Row]:
        """Rows matching all equality predicates in ``where``.

        ``order_by`` holds ``(column, descending)`` pairs.
        """
        ...

    async def count(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> int:
        """Number of matching rows; ``since`` adds ``column > value``."""
        ...

    async def sum(
        self,
        table: str,
        column: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> Decimal:
        """Sum of ``column`` over matching rows (0 when none match)."""
        ...

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert one row and return it with defaults applied."""
        ...

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> list[Row]:
        """Update matching rows, returning them after the update."""
        ...

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete matching rows, returning how many were removed."""
        ...

    async def increment(
        self,
        table: str,
        where: Mapping[str, Any],
        column: str,
        amount: int,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> Row | None:
        """Atomically ``column = GREATEST(column + amount, 0)``.

        Single statement, no read-modify-write. Returns the updated row or
        None when nothing matched.
        """
        ...

    async def ensure(
        self, table: str, key: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> Row:
        """Return the row identified by ``key``, inserting defaults if absent.

        Safe against concurrent callers: exactly one row ever exists.
        """
        ...

    async def execute(self, text: str, values: Mapping[str, Any]) -> list[Row]:
        """Run a raw parameterized statement and return its rows.

        Only the PostgreSQL backend runs raw SQL; the in-memory backend
        raises ``UnsupportedOperationError``.
        """
        ...

    def rls_bypass(self) -> AbstractAsyncContextManager[None]:
        """Lift row-level security for the statements run inside the block."""
        ...

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the unit of work commits.

        Callbacks queued inside a ``transaction()`` that fails are dropped,
        as are all callbacks of a unit of work that rolls back.
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Atomic block: everything inside commits or rolls back together."""
        ...


class StorageProvider(Protocol):
    """Hands out units of work backed by a shared pool."""

    def unit_of_work(self) -> AbstractAsyncContextManager[StorageBackend]:
        """Yield a backend; commit on success, roll back on error.

        After-commit callbacks fire once the commit has succeeded.
        """
        ...

    async def close(self) -> None: ...


class CommitHooks:
    """Callbacks deferred until the owning unit of work commits."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def discard(self, mark: int = 0) -> None:
        """Drop callbacks queued after ``mark``."""
        del self._callbacks[mark:]

    def fire(self) -> None:
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
