"""Query-builder collaborator.

``QueryBuilder`` is the contract the rest of the package talks to;
``SQLAlchemyBuilder`` implements it on top of SQLAlchemy Core so no table
metadata has to be declared or reflected: tables and columns are addressed
by name through ``sa.table`` and ``sa.literal_column``.

A builder accumulates constraints with chainable calls (``where``,
``where_in``, ``join``, ``limit``, ``transacting``) and runs exactly one
statement when one of the awaitable calls (``select``, ``insert``,
``update``, ``delete``) is made. Owners discard it afterwards.
"""

from __future__ import annotations

import asyncio
import operator
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

import sqlalchemy as sa
import structlog


if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from .options import Column

logger = structlog.get_logger(__name__)

_CONNECTION_LOCK: Final[str] = "sqla_relations.lock"

_OPERATORS: Final[dict[str, Callable[[Any, Any], Any]]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "like": lambda column, value: column.like(value),
    "in": lambda column, value: column.in_(value),
}


@dataclass(frozen=True, slots=True)
class InsertResult:
    """Outcome of an insert: the generated identity, when the driver reports one."""

    insert_id: Any = None


@runtime_checkable
class QueryBuilder(Protocol):
    """Capabilities the dispatcher, resolver and pivot helpers rely on."""

    table: str

    @property
    def wheres(self) -> Sequence[Any]: ...

    def where(self, column: str | Mapping[str, Any], *args: Any) -> QueryBuilder: ...

    def where_in(self, column: str, values: Sequence[Any]) -> QueryBuilder: ...

    def join(self, table: str, left: str, op: str, right: str) -> QueryBuilder: ...

    def transacting(self, connection: AsyncConnection) -> QueryBuilder: ...

    def limit(self, count: int) -> QueryBuilder: ...

    async def select(self, columns: Sequence[Column] = ("*",)) -> list[dict[str, Any]]: ...

    async def insert(
        self, attrs: Mapping[str, Any], id_attribute: str | None = None
    ) -> InsertResult: ...

    async def update(self, attrs: Mapping[str, Any]) -> int: ...

    async def delete(self) -> int: ...


class SQLAlchemyBuilder:
    """``QueryBuilder`` implementation backed by an ``AsyncEngine``.

    Without ``transacting`` every statement checks out its own pooled
    connection (``engine.connect()`` for reads, ``engine.begin()`` for
    writes), so concurrent builders run concurrently. When several builders
    share one transaction connection, statements on it are serialized with a
    lock stored in ``connection.info``.

    Example::

        rows = await (
            SQLAlchemyBuilder("posts", engine)
            .where("user_id", 1)
            .limit(10)
            .select(["id", "title"])
        )
    """

    __slots__ = ("_connection", "_engine", "_from", "_limit", "_wheres", "table")

    def __init__(self, table: str, engine: AsyncEngine) -> None:
        self.table = table
        self._engine = engine
        self._from: sa.FromClause = sa.table(table)
        self._wheres: list[sa.ColumnElement[bool]] = []
        self._limit: int | None = None
        self._connection: AsyncConnection | None = None

    @property
    def wheres(self) -> Sequence[sa.ColumnElement[bool]]:
        return tuple(self._wheres)

    def column(self, ref: str) -> sa.ColumnElement[Any]:
        """Column clause for *ref*; bare names are qualified with this table."""
        return sa.literal_column(ref if "." in ref else f"{self.table}.{ref}")

    def where(self, column: str | Mapping[str, Any], *args: Any) -> SQLAlchemyBuilder:
        """Add a predicate.

        Accepts ``where({"a": 1, "b": 2})`` (equality on each key),
        ``where("a", 1)`` (equality) or ``where("a", ">", 1)``.
        ``None`` compared with ``=`` renders as ``IS NULL``.
        """
        if isinstance(column, Mapping):
            for key, value in column.items():
                self._wheres.append(self.column(key) == value)
            return self

        if len(args) == 1:
            op, value = "=", args[0]
        elif len(args) == 2:  # noqa: PLR2004
            op, value = args
        else:
            raise TypeError(f"where() takes a mapping, (column, value) or (column, op, value); got {args!r}")

        try:
            compare = _OPERATORS[op.lower()]
        except KeyError:
            raise ValueError(f"Unsupported operator: {op!r}") from None

        self._wheres.append(compare(self.column(column), value))
        return self

    def where_in(self, column: str, values: Sequence[Any]) -> SQLAlchemyBuilder:
        self._wheres.append(self.column(column).in_(list(values)))
        return self

    def join(self, table: str, left: str, op: str, right: str) -> SQLAlchemyBuilder:
        onclause = _OPERATORS[op](self.column(left), self.column(right))
        self._from = self._from.join(sa.table(table), onclause)
        return self

    def transacting(self, connection: AsyncConnection) -> SQLAlchemyBuilder:
        self._connection = connection
        return self

    def limit(self, count: int) -> SQLAlchemyBuilder:
        self._limit = count
        return self

    async def select(self, columns: Sequence[Column] = ("*",)) -> list[dict[str, Any]]:
        stmt = sa.select(*(self._select_item(column) for column in columns or ("*",)))
        stmt = stmt.select_from(self._from)
        if self._wheres:
            stmt = stmt.where(*self._wheres)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)

        async with self._connect(write=False) as conn:
            result = await conn.execute(stmt)
            rows = [dict(row) for row in result.mappings()]

        logger.debug("select_executed", table=self.table, rows=len(rows))
        return rows

    async def insert(
        self, attrs: Mapping[str, Any], id_attribute: str | None = None
    ) -> InsertResult:
        table = sa.table(self.table, *(sa.column(key) for key in attrs))
        stmt = sa.insert(table).values(dict(attrs))

        async with self._connect(write=True) as conn:
            returning = id_attribute is not None and conn.dialect.insert_returning
            if returning:
                stmt = stmt.returning(sa.literal_column(id_attribute))
            result = await conn.execute(stmt)
            insert_id = result.scalar_one_or_none() if returning else result.lastrowid

        logger.debug("insert_executed", table=self.table, insert_id=insert_id)
        return InsertResult(insert_id=insert_id)

    async def update(self, attrs: Mapping[str, Any]) -> int:
        table = sa.table(self.table, *(sa.column(key) for key in attrs))
        stmt = sa.update(table).values(dict(attrs))
        if self._wheres:
            stmt = stmt.where(*self._wheres)

        async with self._connect(write=True) as conn:
            rowcount = (await conn.execute(stmt)).rowcount

        logger.debug("update_executed", table=self.table, rowcount=rowcount)
        return rowcount

    async def delete(self) -> int:
        stmt = sa.delete(sa.table(self.table))
        if self._wheres:
            stmt = stmt.where(*self._wheres)

        async with self._connect(write=True) as conn:
            rowcount = (await conn.execute(stmt)).rowcount

        logger.debug("delete_executed", table=self.table, rowcount=rowcount)
        return rowcount

    def _select_item(self, column: Column) -> sa.ColumnElement[Any]:
        if isinstance(column, tuple):
            source, alias = column
            return self.column(source).label(alias)
        if column == "*" or column.endswith(".*"):
            return sa.literal_column(column)

        return self.column(column).label(column.rpartition(".")[2])

    @asynccontextmanager
    async def _connect(self, *, write: bool) -> AsyncIterator[AsyncConnection]:
        if self._connection is not None:
            lock = self._connection.info.setdefault(_CONNECTION_LOCK, asyncio.Lock())
            async with lock:
                yield self._connection
            return

        factory = self._engine.begin if write else self._engine.connect
        async with factory() as conn:
            yield conn
