"""Entities (one row) and entity sets (an ordered list of rows of one type).

Relations are declared as plain methods returning one of the relation
accessors::

    class User(Entity):
        table_name = "users"

        def posts(self) -> EntitySet:
            return self.has_many(Post)

        def roles(self) -> EntitySet:
            return self.belongs_to_many(Role).pivot.with_pivot("granted_by")

Calling ``user.posts()`` returns an ``EntitySet`` already constrained to the
user's posts; ``await users.load("posts.comments")`` eager loads the whole
path onto every user in a set with one query per level.
"""

from __future__ import annotations

import itertools
import sys
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import TYPE_CHECKING, Any, ClassVar, Union, overload

from .events import Events
from .exceptions import DatabaseNotConfigured, RelationTypeMismatch
from .relation import PivotOperations, RelationDescriptor, RelationKind
from .tools import as_list


if sys.version_info >= (3, 11):
    from typing import Self, Unpack
else:
    from typing_extensions import Self, Unpack

if TYPE_CHECKING:
    from .builder import QueryBuilder
    from .dispatcher import QueryDispatcher
    from .options import FetchOptions
    from .registry import Database

_cids = itertools.count(1)
_MISSING: Any = object()


class _Queryable(Events):
    """Query-builder plumbing shared by ``Entity`` and ``EntitySet``."""

    table_name: Any
    id_attribute: Any

    def __init__(self) -> None:
        self.relation: RelationDescriptor | None = None
        self.pivot: PivotOperations | None = None
        self._builder: QueryBuilder | None = None

    def builder(self, table: str) -> QueryBuilder:  # pragma: no cover - overridden
        raise NotImplementedError

    def query(self) -> QueryBuilder:
        """Return the pending query builder, creating it on first use.

        Constraints added here apply to the next fetch or destroy only: the
        builder is discarded once a statement runs.
        """
        if self._builder is None:
            self._builder = self.builder(self.table_name)

        return self._builder

    def reset_query(self) -> Self:
        self._builder = None
        return self

    def dispatcher(self, **options: Unpack[FetchOptions]) -> QueryDispatcher:
        from .dispatcher import QueryDispatcher

        return QueryDispatcher(self, options)  # type: ignore[arg-type]

    async def load(
        self, relations: str | Sequence[str] | None, **options: Unpack[FetchOptions]
    ) -> Self:
        """Eager load *relations* (dotted paths allowed) onto this object.

        Issues one query per distinct relation per nesting level, whatever the
        number of parents. If any query fails the error propagates; relations
        already assigned at that point are left as they are.
        """
        from .eager import RelationResolver

        target, rows = self._eager_source()
        await RelationResolver(self, target, rows).process_related(  # type: ignore[arg-type]
            {**options, "with_related": as_list(relations)}
        )

        return self

    def _eager_source(self) -> tuple[Entity, list[dict[str, Any]]]:
        raise NotImplementedError


class Entity(_Queryable):
    """A single row: its attributes plus any eager loaded relations.

    Subclasses set ``table_name`` and ``database``; ``id_attribute`` defaults
    to ``"id"``.
    """

    table_name: ClassVar[str | None] = None
    id_attribute: ClassVar[str] = "id"
    has_timestamps: ClassVar[bool] = False
    defaults: ClassVar[Mapping[str, Any] | None] = None
    database: ClassVar[Database | None] = None

    def __init__(self, attributes: Mapping[str, Any] | None = None, *, parse: bool = False) -> None:
        super().__init__()
        self.cid = f"c{next(_cids)}"
        self.attributes: dict[str, Any] = {}
        self.relations: dict[str, Entity | EntitySet] = {}
        self._eager = False
        attrs = dict(attributes or {})
        if parse:
            attrs = self.parse(attrs)
        self.set(attrs)

    @classmethod
    def builder(cls, table: str) -> QueryBuilder:  # type: ignore[override]
        if cls.database is None:
            raise DatabaseNotConfigured(cls.__name__)

        return cls.database.builder(table)

    # -- attributes --

    @property
    def id(self) -> Any:
        return self.attributes.get(self.id_attribute)

    @id.setter
    def id(self, value: Any) -> None:
        self.attributes[self.id_attribute] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    @overload
    def set(self, key: Mapping[str, Any]) -> Self: ...

    @overload
    def set(self, key: str, value: Any) -> Self: ...

    def set(self, key: str | Mapping[str, Any], value: Any = _MISSING) -> Self:
        if isinstance(key, Mapping):
            self.attributes.update(key)
        elif value is _MISSING:
            raise TypeError("set() needs a value when called with a key")
        else:
            self.attributes[key] = value

        return self

    def has(self, key: str) -> bool:
        """True when *key* is set to something other than ``None``."""
        return self.attributes.get(key) is not None

    def unset(self, key: str) -> Self:
        self.attributes.pop(key, None)
        return self

    def clear(self) -> Self:
        self.attributes.clear()
        return self

    def is_new(self) -> bool:
        return self.id is None

    def parse(self, attrs: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a database row into attributes. Identity by default."""
        return dict(attrs)

    def format(self, attrs: Mapping[str, Any]) -> dict[str, Any]:
        """Convert attributes into the values written to the table. Identity by default."""
        return dict(attrs)

    def validate(self, attrs: Mapping[str, Any], options: Mapping[str, Any]) -> None:
        """Hook called before every save; raise to abort it. Does nothing by default."""

    def timestamp(self, method: str) -> dict[str, datetime]:
        now = datetime.now(timezone.utc)
        values = {"updated_at": now}
        if method == "insert":
            values["created_at"] = now

        return values

    def related(self, name: str) -> Entity | EntitySet | None:
        return self.relations.get(name)

    def to_dict(self, *, shallow: bool = False) -> dict[str, Any]:
        """Attributes, plus serialized relations unless *shallow*."""
        data = dict(self.attributes)
        if shallow:
            return data
        for name, related in self.relations.items():
            data[name] = related.to_dict() if isinstance(related, Entity) else related.to_list()

        return data

    def clone(self) -> Self:
        copy = type(self)(self.attributes)
        copy.relations = {name: related.clone() for name, related in self.relations.items()}
        return copy

    # -- persistence --

    async def fetch(self, **options: Unpack[FetchOptions]) -> Self:
        """Load the first row matching the current attributes (and relation, if any)."""
        await self.dispatcher(**options).fetch_first()
        return self

    async def save(
        self, attrs: Mapping[str, Any] | None = None, **options: Unpack[FetchOptions]
    ) -> Self:
        """Insert or update this row.

        *attrs* are set on the entity first. New entities (no id) are inserted
        unless ``method`` says otherwise; after an insert the generated id is
        set on the entity.
        """
        attrs = dict(attrs or {})
        method = options.get("method") or ("insert" if self.is_new() else "update")
        if self.has_timestamps:
            attrs.update(self.timestamp(method))

        values = {**self.defaults, **self.attributes, **attrs} if self.defaults else attrs
        self.set(values)
        self.validate(attrs, options)

        dispatcher = self.dispatcher(**options)
        self.trigger("beforeSave", self, method, options)

        if method == "insert":
            result: Any = await dispatcher.insert()
            if result.insert_id is not None:
                self.id = result.insert_id
        else:
            result = await dispatcher.update(attrs)

        self.trigger("create" if method == "insert" else "update", self, result, options)
        return self

    async def destroy(self, **options: Unpack[FetchOptions]) -> int:
        """Delete this row by id (or by pending where clauses); returns the row count."""
        self.trigger("beforeDestroy", self, options)
        rowcount = await self.dispatcher(**options).delete()
        self.trigger("destroy", self, rowcount, options)
        return rowcount

    # -- relations --

    def has_one(self, target: type[Entity], foreign_key: str | None = None) -> Entity:
        """One row of *target* whose ``foreign_key`` holds this entity's id."""
        return self._relates_to(target, RelationKind.HAS_ONE, foreign_key=foreign_key)  # type: ignore[return-value]

    def has_many(
        self, target: type[Entity] | type[EntitySet], foreign_key: str | None = None
    ) -> EntitySet:
        """Rows of *target* whose ``foreign_key`` holds this entity's id."""
        return self._relates_to(target, RelationKind.HAS_MANY, foreign_key=foreign_key)  # type: ignore[return-value]

    def belongs_to(self, target: type[Entity], other_key: str | None = None) -> Entity:
        """The *target* row whose id is held in this entity's ``other_key``."""
        return self._relates_to(target, RelationKind.BELONGS_TO, other_key=other_key)  # type: ignore[return-value]

    def belongs_to_many(
        self,
        target: type[Entity] | type[EntitySet],
        join_table: str | None = None,
        foreign_key: str | None = None,
        other_key: str | None = None,
    ) -> EntitySet:
        """Rows of *target* linked to this entity through *join_table*."""
        return self._relates_to(  # type: ignore[return-value]
            target,
            RelationKind.BELONGS_TO_MANY,
            join_table=join_table,
            foreign_key=foreign_key,
            other_key=other_key,
        )

    @contextmanager
    def eager_mode(self) -> Iterator[Self]:
        """Make relation accessors build eager descriptors while inside the block."""
        self._eager = True
        try:
            yield self
        finally:
            self._eager = False

    def _relates_to(
        self,
        target: type[Entity] | type[EntitySet],
        kind: RelationKind,
        **keys: str | None,
    ) -> Entity | EntitySet:
        entity_cls, set_cls = _resolve_target(kind, target)
        relation = RelationDescriptor.create(
            kind,
            owner_table=self.table_name,
            target_table=entity_cls.table_name,
            target_id_attribute=entity_cls.id_attribute,
            **keys,
        )
        relation.entity_cls = entity_cls
        relation.set_cls = set_cls

        if self._eager:
            relation.parent_id_attribute = self.id_attribute
        elif kind is RelationKind.BELONGS_TO:
            relation.fk_value = self.get(relation.other_key)  # type: ignore[arg-type]
        else:
            relation.fk_value = self.id

        instance: Entity | EntitySet = set_cls() if set_cls is not None else entity_cls()
        instance.relation = relation
        if kind is RelationKind.BELONGS_TO_MANY:
            instance.pivot = PivotOperations(instance)  # type: ignore[arg-type]

        return instance

    def _eager_source(self) -> tuple[Entity, list[dict[str, Any]]]:
        return self, [self.to_dict(shallow=True)]

    def _populate(self, rows: list[dict[str, Any]]) -> None:
        self.set(self.parse(rows[0]))

    def _empty(self) -> dict[str, Any]:
        self.clear()
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.cid} {self.attributes!r}>"


def _resolve_target(
    kind: RelationKind, target: Any
) -> tuple[type[Entity], type[EntitySet] | None]:
    """Validate a relation target; multi relations get an ``EntitySet`` class."""
    is_entity = isinstance(target, type) and issubclass(target, Entity)
    if not kind.is_multi:
        if not is_entity:
            raise RelationTypeMismatch(kind.value, target, "an Entity subclass")
        return target, None

    if is_entity:
        return target, EntitySet.of(target)
    if isinstance(target, type) and issubclass(target, EntitySet):
        return target.entity, target

    raise RelationTypeMismatch(kind.value, target, "an Entity or EntitySet subclass")


class EntitySet(_Queryable, Sequence[Entity]):
    """Ordered collection of entities of one declared type (``entity``).

    ``comparator`` keeps the set sorted: either an attribute name or a key
    function taking an entity.
    """

    entity: ClassVar[type[Entity]] = Entity
    comparator: ClassVar[Union[str, Callable[[Entity], Any], None]] = None

    def __init__(
        self,
        entities: Iterable[Entity | Mapping[str, Any]] | None = None,
        *,
        comparator: str | Callable[[Entity], Any] | None = None,
        parse: bool = False,
    ) -> None:
        if not (isinstance(self.entity, type) and issubclass(self.entity, Entity)):
            raise TypeError("Only Entity subclasses are allowed as EntitySet.entity")

        super().__init__()
        self.models: list[Entity] = []
        if comparator is not None:
            self.comparator = comparator  # type: ignore[misc]
        if entities:
            self.add(entities, parse=parse)

    @classmethod
    def of(cls, entity: type[Entity]) -> type[EntitySet]:
        """Return the (cached) subclass of this set bound to *entity*."""
        return _set_class(cls, entity)

    @property
    def table_name(self) -> str | None:  # type: ignore[override]
        return self.entity.table_name

    @property
    def id_attribute(self) -> str:  # type: ignore[override]
        return self.entity.id_attribute

    def builder(self, table: str) -> QueryBuilder:
        return self.entity.builder(table)

    # -- membership --

    def add(
        self, items: Entity | Mapping[str, Any] | Iterable[Entity | Mapping[str, Any]], *, parse: bool = False
    ) -> Self:
        if isinstance(items, (Entity, Mapping)):
            items = [items]
        self.models.extend(self._prepare(item, parse=parse) for item in items)
        if self.comparator is not None:
            self.sort()

        return self

    def reset(
        self, items: Iterable[Entity | Mapping[str, Any]] | None = None, *, parse: bool = False
    ) -> Self:
        self.models = []
        if items:
            self.add(items, parse=parse)

        return self

    def sort(self) -> Self:
        comparator = self.comparator
        if comparator is None:
            raise ValueError("Cannot sort a set without a comparator")
        if isinstance(comparator, str):
            # members missing the attribute sort last
            self.models.sort(key=lambda model: (model.get(comparator) is None, model.get(comparator)))
        else:
            self.models.sort(key=comparator)

        return self

    def get(self, id: Any) -> Entity | None:  # noqa: A002
        return next((model for model in self.models if model.id == id), None)

    def where(self, **attrs: Any) -> list[Entity]:
        return [model for model in self.models if _matches(model, attrs)]

    def find_where(self, **attrs: Any) -> Entity | None:
        return next((model for model in self.models if _matches(model, attrs)), None)

    def pluck(self, attr: str) -> list[Any]:
        return [model.get(attr) for model in self.models]

    def to_list(self, *, shallow: bool = False) -> list[dict[str, Any]]:
        return [model.to_dict(shallow=shallow) for model in self.models]

    def clone(self) -> Self:
        return type(self)([model.clone() for model in self.models])

    # -- persistence --

    async def fetch(self, **options: Unpack[FetchOptions]) -> Self:
        """Replace the members with every row matching the pending query."""
        await self.dispatcher(**options).fetch_all()
        return self

    async def create(
        self, attrs: Entity | Mapping[str, Any], **options: Unpack[FetchOptions]
    ) -> Entity:
        """Save a new entity and add it to the set once the insert succeeds."""
        model = self._prepare(attrs, parse=options.get("parse", False))
        await model.save(None, **options)
        self.add(model)
        return model

    def _prepare(self, item: Entity | Mapping[str, Any], *, parse: bool) -> Entity:
        if isinstance(item, Entity):
            if not isinstance(item, self.entity):
                raise TypeError(
                    f"{type(self).__name__} only holds {self.entity.__name__}, got {type(item).__name__}"
                )
            return item

        return self.entity(item, parse=parse)

    def _eager_source(self) -> tuple[Entity, list[dict[str, Any]]]:
        return self.entity(), [model.to_dict(shallow=True) for model in self.models]

    def _populate(self, rows: list[dict[str, Any]]) -> None:
        self.reset(rows, parse=True)

    def _empty(self) -> list[dict[str, Any]]:
        self.reset()
        return []

    @overload
    def __getitem__(self, index: int) -> Entity: ...

    @overload
    def __getitem__(self, index: slice) -> list[Entity]: ...

    def __getitem__(self, index: int | slice) -> Entity | list[Entity]:
        return self.models[index]

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.models)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.models!r}>"


@lru_cache(maxsize=None)
def _set_class(base: type[EntitySet], entity: type[Entity]) -> type[EntitySet]:
    return type(f"{entity.__name__}Set", (base,), {"entity": entity, "__module__": entity.__module__})


def _matches(model: Entity, attrs: Mapping[str, Any]) -> bool:
    return all(model.get(key, _MISSING) == value for key, value in attrs.items())
