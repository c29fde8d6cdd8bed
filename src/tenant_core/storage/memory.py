"""In-memory storage backend.

Rows live in per-table dicts keyed by primary key. Column defaults, unique
constraints and row-level security are derived from the ORM metadata so the
backend behaves like the PostgreSQL one for everything the core relies on.
Every operation runs without suspension points, so each call is atomic with
respect to other tasks sharing the store.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import DateTime, Table, UniqueConstraint

from tenant_core.errors import (
    InternalError,
    InvalidDataError,
    UnsupportedOperationError,
)
from tenant_core.storage.base import CommitHooks, Row
from tenant_core.storage.orm import RLS_TABLES, Base

logger = structlog.get_logger()

Undo = Callable[[], None]


def _norm(value: Any) -> Any:
    return str(value) if isinstance(value, uuid.UUID) else value


def _matches(row: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    return all(_norm(row.get(k)) == _norm(v) for k, v in where.items())


def _sort_key(column: str) -> Callable[[Row], tuple[bool, Any]]:
    def key(row: Row) -> tuple[bool, Any]:
        value = _norm(row.get(column))
        return (value is None, value)

    return key


class MemoryStore:
    """Process-wide table storage shared by all units of work."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Row]] = {
            name: {} for name in Base.metadata.tables
        }

    @staticmethod
    def table(name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise InternalError(f"Unknown table: {name}") from None

    def defaults(self, name: str) -> Row:
        """Fresh row with every column set to its default (or None)."""
        row: Row = {}
        now = datetime.now(UTC)
        for column in self.table(name).columns:
            default = column.default
            if default is not None and default.is_callable:
                row[column.name] = default.arg(None)  # type: ignore[attr-defined]
            elif default is not None and default.is_scalar:
                row[column.name] = copy.deepcopy(default.arg)  # type: ignore[attr-defined]
            elif column.server_default is not None and isinstance(
                column.type, DateTime
            ):
                row[column.name] = now
            else:
                row[column.name] = None
        return row

    def unique_sets(self, name: str) -> list[tuple[str, ...]]:
        table = self.table(name)
        sets = [tuple(c.name for c in table.primary_key.columns)]
        sets.extend((c.name,) for c in table.columns if c.unique)
        sets.extend(
            tuple(c.name for c in constraint.columns)
            for constraint in table.constraints
            if isinstance(constraint, UniqueConstraint)
        )
        return sets


class MemoryBackend:
    """One unit of work over a ``MemoryStore``.

    Keeps an undo journal so a failed unit of work (or a failed nested
    ``transaction()``) leaves the store as it was, and holds back
    after-commit callbacks until the provider reports success.
    """

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._tenant_id: str | None = None
        self._journal: list[Undo] = []
        self._rls_bypassed = False
        self.hooks = CommitHooks()

    # ── Unit-of-work plumbing ──

    async def bind_tenant(self, tenant_id: str | None) -> None:
        self._tenant_id = str(tenant_id) if tenant_id is not None else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        mark, hooks_mark = len(self._journal), len(self.hooks)
        try:
            yield
        except BaseException:
            self.rollback(mark)
            self.hooks.discard(hooks_mark)
            raise

    def after_commit(self, callback: Callable[[], None]) -> None:
        self.hooks.add(callback)

    def rollback(self, mark: int = 0) -> None:
        """Undo journal entries recorded after ``mark``."""
        while len(self._journal) > mark:
            self._journal.pop()()

    # ── Row-level security ──

    @asynccontextmanager
    async def rls_bypass(self) -> AsyncIterator[None]:
        previous, self._rls_bypassed = self._rls_bypassed, True
        try:
            yield
        finally:
            self._rls_bypassed = previous

    def _visible(self, table: str, row: Mapping[str, Any]) -> bool:
        if table not in RLS_TABLES or self._rls_bypassed:
            return True
        return self._tenant_id is not None and _norm(row.get("tenant_id")) == (
            self._tenant_id
        )

    def _rows(self, table: str, where: Mapping[str, Any]) -> list[Row]:
        rows = self._store.tables[self._store.table(table).name].values()
        return [r for r in rows if self._visible(table, r) and _matches(r, where)]

    def _check_columns(self, table: str, columns: Any) -> None:
        known = self._store.table(table).columns.keys()
        unknown = set(columns) - set(known)
        if unknown:
            raise InternalError(f"Unknown columns for {table}: {sorted(unknown)}")

    def _check_unique(self, table: str, row: Row, exclude: Row | None = None) -> None:
        for cols in self._store.unique_sets(table):
            if any(row.get(c) is None for c in cols):
                continue
            for existing in self._store.tables[table].values():
                if existing is exclude:
                    continue
                if all(_norm(existing.get(c)) == _norm(row.get(c)) for c in cols):
                    raise InvalidDataError(
                        f"Duplicate value for {table}({', '.join(cols)})"
                    )

    @staticmethod
    def _key(row: Mapping[str, Any]) -> str:
        return str(row["id"])

    # ── Row operations ──

    async def select(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: Sequence[tuple[str, bool]] = (),
    ) -> list[Row]:
        self._check_columns(table, where)
        rows = self._rows(table, where)
        for column, descending in reversed(order_by):
            rows.sort(key=_sort_key(column), reverse=descending)
        end = None if limit is None else offset + limit
        return [dict(r) for r in rows[offset:end]]

    def _since(
        self, table: str, where: Mapping[str, Any], since: tuple[str, datetime] | None
    ) -> list[Row]:
        rows = self._rows(table, where)
        if since is None:
            return rows
        column, threshold = since
        self._check_columns(table, [column])
        return [r for r in rows if r.get(column) is not None and r[column] > threshold]

    async def count(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> int:
        self._check_columns(table, where)
        return len(self._since(table, where, since))

    async def sum(
        self,
        table: str,
        column: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> Decimal:
        self._check_columns(table, [*where, column])
        rows = self._since(table, where, since)
        return sum(
            (Decimal(str(r[column])) for r in rows if r.get(column) is not None),
            Decimal(0),
        )

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        self._check_columns(table, values)
        row = self._store.defaults(table)
        row.update(values)
        if table in RLS_TABLES and not self._visible(table, row):
            raise InternalError(
                f'new row violates row-level security policy for table "{table}"'
            )
        self._check_unique(table, row)

        rows = self._store.tables[table]
        key = self._key(row)
        rows[key] = row
        self._journal.append(lambda: rows.pop(key, None))
        return dict(row)

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> list[Row]:
        self._check_columns(table, [*where, *values])
        updated: list[Row] = []
        for row in self._rows(table, where):
            candidate = {**row, **values}
            self._check_unique(table, candidate, exclude=row)
            self._record_restore(row)
            row.update(values)
            updated.append(dict(row))
        return updated

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        self._check_columns(table, where)
        rows = self._store.tables[table]
        removed = self._rows(table, where)
        for row in removed:
            key = self._key(row)
            rows.pop(key)
            self._journal.append(lambda key=key, row=row: rows.__setitem__(key, row))
        return len(removed)

    async def increment(
        self,
        table: str,
        where: Mapping[str, Any],
        column: str,
        amount: int,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> Row | None:
        self._check_columns(table, [*where, column, *(extra or {})])
        matched = self._rows(table, where)
        if not matched:
            return None
        row = matched[0]
        self._record_restore(row)
        row[column] = max((row.get(column) or 0) + amount, 0)
        if extra:
            row.update(extra)
        return dict(row)

    async def ensure(
        self, table: str, key: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> Row:
        existing = self._rows(table, key)
        if existing:
            return dict(existing[0])
        return await self.insert(table, {**defaults, **key})

    async def execute(self, text: str, values: Mapping[str, Any]) -> list[Row]:
        raise UnsupportedOperationError(
            "Raw statements require the postgres storage backend"
        )

    def _record_restore(self, row: Row) -> None:
        snapshot = dict(row)

        def restore() -> None:
            row.clear()
            row.update(snapshot)

        self._journal.append(restore)


class MemoryProvider:
    """Storage provider keeping all rows in process memory.

    Writes are visible to other units of work as soon as they happen; a
    failing unit of work rolls its own writes back.
    """

    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[MemoryBackend]:
        backend = MemoryBackend(self.store)
        try:
            yield backend
        except BaseException:
            backend.rollback()
            backend.hooks.discard()
            raise
        backend.hooks.fire()

    async def close(self) -> None:
        logger.debug("memory_storage_closed")
