"""Adapts entity operations into query-builder calls."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Union

import structlog

from .eager import RelationResolver
from .entity import Entity, EntitySet
from .exceptions import DestroyWithoutConstraint, EmptyResponse
from .relation import apply_constraints
from .tools import skim


if TYPE_CHECKING:
    from .builder import InsertResult, QueryBuilder
    from .options import Column, FetchOptions

logger = structlog.get_logger(__name__)

Target = Union[Entity, EntitySet]


class QueryDispatcher:
    """Runs fetch, insert, update and delete for one entity or entity set.

    A relation target constrained to a known owner value gets its relation
    predicate applied at construction; ``transacting`` is threaded into the
    builder. The target's builder is reset after every statement, successful
    or not, so constraints never leak into the next operation.
    """

    __slots__ = ("options", "query", "target")

    def __init__(self, target: Target, options: FetchOptions | None = None) -> None:
        self.target = target
        self.options: FetchOptions = options or {}
        self.query: QueryBuilder = target.query()

        relation = target.relation
        if relation is not None and relation.fk_value is not None:
            apply_constraints(target)
        if (connection := self.options.get("transacting")) is not None:
            self.query.transacting(connection)

    async def fetch_first(self) -> list[dict[str, Any]] | dict[str, Any]:
        """Fetch one row matching the target's current attributes."""
        self.query.where(dict(self.target.attributes)).limit(1)  # type: ignore[union-attr]
        return await self.fetch_all()

    async def fetch_all(self) -> list[dict[str, Any]] | dict[str, Any]:
        """Select rows into the target.

        Returns the fetched rows, or an empty ``dict`` / ``list`` when nothing
        matched (the entity is cleared, the set emptied).

        Raises:
            EmptyResponse: Nothing matched and ``require`` was set.
        """
        target = self.target
        options = self.options
        try:
            rows = await self.query.select(self._columns())
        finally:
            target.reset_query()

        if not rows:
            if options.get("require"):
                raise EmptyResponse(target.table_name)
            return target._empty()  # noqa: SLF001

        rows = skim(rows)
        target._populate(rows)  # noqa: SLF001
        logger.debug("fetched", table=target.table_name, rows=len(rows))

        if options.get("with_related"):
            prototype, _ = target._eager_source()  # noqa: SLF001
            await RelationResolver(target, prototype, rows).process_related(options)

        target.trigger("fetched", target, rows, options)
        return rows

    async def insert(self) -> InsertResult:
        target = self.target
        assert isinstance(target, Entity)
        try:
            return await self.query.insert(target.format(target.attributes), target.id_attribute)
        finally:
            target.reset_query()

    async def update(
        self, attrs: Mapping[str, Any] | None = None, options: FetchOptions | None = None
    ) -> int:
        """Update the target's row by id.

        Only *attrs* are sent when ``partial`` is set; otherwise every
        attribute is written.
        """
        target = self.target
        assert isinstance(target, Entity)
        options = self.options if options is None else options
        data = attrs if attrs and options.get("partial") else target.attributes
        try:
            return await self.query.where(target.id_attribute, "=", target.id).update(
                target.format(data)
            )
        finally:
            target.reset_query()

    async def delete(self) -> int:
        """Delete by id, or by where clauses already on the query.

        Raises:
            DestroyWithoutConstraint: Neither an id nor a where clause is present.
        """
        target = self.target
        try:
            if isinstance(target, Entity) and target.id is not None:
                self.query.where(target.id_attribute, "=", target.id)
            elif not self.query.wheres:
                raise DestroyWithoutConstraint(target.table_name)

            return await self.query.delete()
        finally:
            target.reset_query()

    def _columns(self) -> list[Column]:
        columns = self.options.get("columns")
        if columns:
            return [columns] if isinstance(columns, str) else list(columns)

        relation = self.target.relation
        if relation is not None and relation.columns:
            return list(relation.columns)

        return ["*"]
