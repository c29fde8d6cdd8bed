"""PostgreSQL storage backend on SQLAlchemy Core.

Statements are built from the ORM tables, so column names come from the
schema and every value is a bound parameter. Row-level security is bound
per transaction through ``set_config('app.current_tenant_id', ..., true)``.
``app.rls_bypass`` lifts the policies for admin statements; it is set inside
a savepoint and reset before the savepoint is released.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator, Mapping, Sequence
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import ColumnElement, Table, delete, func, insert, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_core.errors import InternalError, InvalidDataError
from tenant_core.storage.base import CommitHooks, Row
from tenant_core.storage.database import Database
from tenant_core.storage.orm import Base

logger = structlog.get_logger()

BIND_TENANT_SQL = text("SELECT set_config('app.current_tenant_id', :tenant_id, true)")
RLS_BYPASS_SQL = text("SELECT set_config('app.rls_bypass', :value, true)")


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map driver failures onto the core's error types.

    Messages never include statement text or parameters.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.warning("storage_integrity_error", error=type(exc.orig).__name__)
        raise InvalidDataError("Data violates a uniqueness or integrity rule") from exc
    except SQLAlchemyError as exc:
        logger.error("storage_error", error=type(exc).__name__)
        raise InternalError("Storage operation failed") from exc


def _table(name: str) -> Table:
    try:
        return Base.metadata.tables[name]
    except KeyError:
        raise InternalError(f"Unknown table: {name}") from None


def _predicate(table: Table, where: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    return [table.c[column] == value for column, value in where.items()]


def _filters(
    table: Table, where: Mapping[str, Any], since: tuple[str, datetime] | None
) -> list[ColumnElement[bool]]:
    clauses = _predicate(table, where)
    if since is not None:
        column, threshold = since
        clauses.append(table.c[column] > threshold)
    return clauses


class SqlBackend:
    """One unit of work on a single ``AsyncSession``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.hooks = CommitHooks()

    async def bind_tenant(self, tenant_id: str | None) -> None:
        with translate_errors():
            await self._session.execute(
                BIND_TENANT_SQL, {"tenant_id": str(tenant_id) if tenant_id else ""}
            )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        mark = len(self.hooks)
        try:
            with translate_errors():
                async with self._session.begin_nested():
                    yield
        except BaseException:
            self.hooks.discard(mark)
            raise

    def after_commit(self, callback: Callable[[], None]) -> None:
        self.hooks.add(callback)

    @asynccontextmanager
    async def rls_bypass(self) -> AsyncIterator[None]:
        async with self.transaction():
            with translate_errors():
                await self._session.execute(RLS_BYPASS_SQL, {"value": "on"})
            yield
            with translate_errors():
                await self._session.execute(RLS_BYPASS_SQL, {"value": "off"})

    async def select(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: Sequence[tuple[str, bool]] = (),
    ) -> list[Row]:
        tbl = _table(table)
        stmt = select(tbl).where(*_predicate(tbl, where))
        for column, descending in order_by:
            stmt = stmt.order_by(tbl.c[column].desc() if descending else tbl.c[column])
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        with translate_errors():
            result = await self._session.execute(stmt)
        return [dict(row) for row in result.mappings()]

    async def count(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> int:
        tbl = _table(table)
        stmt = select(func.count()).select_from(tbl).where(*_filters(tbl, where, since))
        with translate_errors():
            result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def sum(
        self,
        table: str,
        column: str,
        where: Mapping[str, Any],
        *,
        since: tuple[str, datetime] | None = None,
    ) -> Decimal:
        tbl = _table(table)
        stmt = select(func.coalesce(func.sum(tbl.c[column]), 0)).where(
            *_filters(tbl, where, since)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        tbl = _table(table)
        stmt = insert(tbl).values(dict(values)).returning(*tbl.c)
        with translate_errors():
            result = await self._session.execute(stmt)
            return dict(result.mappings().one())

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> list[Row]:
        tbl = _table(table)
        stmt = (
            update(tbl)
            .where(*_predicate(tbl, where))
            .values(dict(values))
            .returning(*tbl.c)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
            return [dict(row) for row in result.mappings()]

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        tbl = _table(table)
        stmt = delete(tbl).where(*_predicate(tbl, where))
        with translate_errors():
            result = await self._session.execute(stmt)
        return int(result.rowcount)  # type: ignore[attr-defined]

    async def increment(
        self,
        table: str,
        where: Mapping[str, Any],
        column: str,
        amount: int,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> Row | None:
        tbl = _table(table)
        values: dict[str, Any] = {column: func.greatest(tbl.c[column] + amount, 0)}
        values.update(extra or {})
        stmt = (
            update(tbl)
            .where(*_predicate(tbl, where))
            .values(values)
            .returning(*tbl.c)
        )
        with translate_errors():
            result = await self._session.execute(stmt)
            row = result.mappings().first()
        return dict(row) if row is not None else None

    async def ensure(
        self, table: str, key: Mapping[str, Any], defaults: Mapping[str, Any]
    ) -> Row:
        tbl = _table(table)
        stmt = (
            pg_insert(tbl)
            .values({**defaults, **key})
            .on_conflict_do_nothing(index_elements=list(key))
        )
        with translate_errors():
            await self._session.execute(stmt)
            result = await self._session.execute(
                select(tbl).where(*_predicate(tbl, key))
            )
            return dict(result.mappings().one())

    async def execute(self, text_: str, values: Mapping[str, Any]) -> list[Row]:
        with translate_errors():
            result = await self._session.execute(text(text_), dict(values))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings()]


class SqlProvider:
    """Units of work backed by the shared connection pool."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SqlBackend]:
        with translate_errors():
            async with self._database.session() as session:
                backend = SqlBackend(session)
                async with session.begin():
                    yield backend
        backend.hooks.fire()

    async def close(self) -> None:
        await self._database.dispose()
