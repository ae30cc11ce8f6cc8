"""Relation descriptors, query constraints and many-to-many pivot helpers.

A ``RelationDescriptor`` is built every time a relation accessor runs
(``Entity.has_many`` and friends) and is attached to the returned target as
``target.relation``. It is built in one of two modes:

* **constrained**: ``fk_value`` is taken from the owning entity right away,
  and fetching the target adds a single ``=`` predicate;
* **eager**: the resolver invokes the accessor on a prototype entity, so
  ``parent_id_attribute`` and the child constructors are captured instead,
  and the fetch is constrained with ``IN`` over every parent's key.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from .exceptions import UnboundRelation
from .tools import as_list, default_foreign_key, default_join_table, pivot_alias


if TYPE_CHECKING:
    from .builder import InsertResult, QueryBuilder
    from .entity import Entity, EntitySet
    from .options import Column, FetchOptions

logger = structlog.get_logger(__name__)


class RelationKind(str, Enum):
    HAS_ONE = "hasOne"
    HAS_MANY = "hasMany"
    BELONGS_TO = "belongsTo"
    BELONGS_TO_MANY = "belongsToMany"

    @property
    def is_multi(self) -> bool:
        """Whether the relation resolves to an ``EntitySet`` rather than one ``Entity``."""
        return self in (RelationKind.HAS_MANY, RelationKind.BELONGS_TO_MANY)


@dataclass(slots=True)
class RelationDescriptor:
    """Declarative description of one relation from an owner to a target.

    Key columns per kind:

    * hasOne / hasMany: ``foreign_key`` is the column on the target pointing
      back at the owner.
    * belongsTo: ``other_key`` is the column on the owner, ``foreign_key`` is
      the target's id attribute.
    * belongsToMany: both live on ``join_table``; ``other_key`` points at the
      owner and ``foreign_key`` at the target.
    """

    kind: RelationKind
    foreign_key: str
    other_key: str | None = None
    join_table: str | None = None
    pivot_columns: list[tuple[str, str]] = field(default_factory=list)
    fk_value: Any = None
    parent_id_attribute: str | None = None
    entity_cls: type[Entity] | None = None
    set_cls: type[EntitySet] | None = None
    columns: list[Column] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        kind: RelationKind,
        *,
        owner_table: str | None,
        target_table: str | None,
        target_id_attribute: str,
        foreign_key: str | None = None,
        other_key: str | None = None,
        join_table: str | None = None,
    ) -> RelationDescriptor:
        """Build a descriptor, deriving any key or table name not given explicitly.

        Derived names follow ``<singular table>_id`` for keys and the sorted,
        singularized table names joined by ``_`` for join tables.
        """
        if kind is RelationKind.BELONGS_TO:
            return cls(
                kind=kind,
                foreign_key=target_id_attribute,
                other_key=other_key or default_foreign_key(target_table),
            )

        if kind is RelationKind.BELONGS_TO_MANY:
            return cls(
                kind=kind,
                foreign_key=foreign_key or default_foreign_key(target_table),
                other_key=other_key or default_foreign_key(owner_table),
                join_table=join_table or default_join_table(owner_table, target_table),  # type: ignore[arg-type]
            )

        return cls(kind=kind, foreign_key=foreign_key or default_foreign_key(owner_table))

    @property
    def is_eager(self) -> bool:
        return self.parent_id_attribute is not None

    @property
    def parent_key(self) -> str | None:
        """Parent attribute whose values select (and match) the children."""
        if self.kind is RelationKind.BELONGS_TO:
            return self.other_key

        return self.parent_id_attribute

    @property
    def child_key(self) -> str:
        """Column of a fetched child row compared against the parent key."""
        if self.kind is RelationKind.BELONGS_TO_MANY:
            return pivot_alias(self.other_key)  # type: ignore[arg-type]

        return self.foreign_key


def apply_constraints(
    target: Entity | EntitySet, keys: Sequence[Any] | None = None
) -> QueryBuilder:
    """Constrain *target*'s query builder to the rows of its relation.

    With *keys* (eager mode) the relation column is matched with ``IN``;
    without, it is matched with ``=`` against the bound ``fk_value``.
    """
    relation = target.relation
    assert relation is not None
    builder = target.query()

    if relation.kind is RelationKind.BELONGS_TO_MANY:
        return _belongs_to_many(relation, builder, target.table_name, target.id_attribute, keys)  # type: ignore[arg-type]

    if keys is not None:
        return builder.where_in(relation.foreign_key, keys)

    return builder.where(relation.foreign_key, "=", relation.fk_value)


def _belongs_to_many(
    relation: RelationDescriptor,
    builder: QueryBuilder,
    table_name: str,
    id_attribute: str,
    keys: Sequence[Any] | None,
) -> QueryBuilder:
    join_table = relation.join_table
    other_key = relation.other_key
    foreign_key = relation.foreign_key
    assert join_table is not None and other_key is not None

    relation.columns = [
        f"{table_name}.*",
        (f"{join_table}.{other_key}", pivot_alias(other_key)),
        (f"{join_table}.{foreign_key}", pivot_alias(foreign_key)),
        *relation.pivot_columns,
    ]
    builder.join(join_table, f"{table_name}.{id_attribute}", "=", f"{join_table}.{foreign_key}")

    if keys is not None:
        return builder.where_in(f"{join_table}.{other_key}", keys)

    return builder.where(f"{join_table}.{other_key}", "=", relation.fk_value)


class PivotOperations:
    """Join-table helpers carried by ``belongs_to_many`` targets as ``target.pivot``.

    Example::

        roles = user.roles()
        await roles.pivot.attach([1, 2])
        await roles.pivot.detach(2)
    """

    __slots__ = ("_target",)

    def __init__(self, target: EntitySet) -> None:
        self._target = target

    @property
    def relation(self) -> RelationDescriptor:
        relation = self._target.relation
        assert relation is not None
        return relation

    def with_pivot(self, columns: str | Mapping[str, str] | Sequence[str | Mapping[str, str]]) -> EntitySet:
        """Select extra join-table columns with the related rows.

        A bare name ``"level"`` is selected as ``pivot_level``; a mapping
        ``{"level": "role_level"}`` selects ``level`` as ``role_level``.
        Only fetches made after this call are affected.
        """
        relation = self.relation
        for column in as_list(columns):
            if isinstance(column, str):
                relation.pivot_columns.append((f"{relation.join_table}.{column}", f"pivot_{column}"))
                continue
            for source, alias in column.items():
                relation.pivot_columns.append((f"{relation.join_table}.{source}", alias))

        return self._target

    async def attach(self, ids: Any = None, **options: Any) -> list[InsertResult]:
        """Insert one join row per item in *ids*; ``None`` is a no-op."""
        if ids is None:
            return []

        return await self._handle("insert", ids, options)  # type: ignore[return-value]

    async def detach(self, ids: Any = None, **options: Any) -> list[int]:
        """Delete the join rows for *ids*, or every join row of the owner when ``None``."""
        if ids is None:
            relation = self.relation
            row = self._join_rows([None], "detach")[0]
            builder = self._builder(options)
            rowcount = await builder.where(row).delete()
            logger.debug("pivot_detached", join_table=relation.join_table, rowcount=rowcount)
            return [rowcount]

        return await self._handle("delete", ids, options)  # type: ignore[return-value]

    async def _handle(self, method: str, ids: Any, options: FetchOptions) -> list[Any]:
        rows = self._join_rows(as_list(ids), "attach" if method == "insert" else "detach")
        pending = []
        for row in rows:
            builder = self._builder(options)
            if method == "delete":
                pending.append(builder.where(row).delete())
            else:
                pending.append(builder.insert(row))

        results = list(await asyncio.gather(*pending))
        logger.debug(f"pivot_{method}", join_table=self.relation.join_table, rows=len(rows))

        return results

    def _builder(self, options: FetchOptions) -> QueryBuilder:
        builder = self._target.builder(self.relation.join_table)  # type: ignore[arg-type]
        if (connection := options.get("transacting")) is not None:
            builder.transacting(connection)

        return builder

    def _join_rows(self, items: list[Any], action: str) -> list[dict[str, Any]]:
        from .entity import Entity

        relation = self.relation
        if relation.fk_value is None:
            raise UnboundRelation(relation.join_table or "", action)

        rows: list[dict[str, Any]] = []
        for item in items:
            row: dict[str, Any] = {relation.other_key: relation.fk_value}  # type: ignore[dict-item]
            if isinstance(item, Entity):
                row[relation.foreign_key] = item.id
            elif isinstance(item, Mapping):
                row.update(item)
            elif item is not None:
                row[relation.foreign_key] = item
            rows.append(row)

        return rows
