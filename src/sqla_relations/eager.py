"""Eager loading: batching related fetches per level and matching them back.

``RelationResolver.process_related`` handles one level of a load request.
For ``("posts.comments", "posts.tags", "profile")`` on a set of users it

1. groups the paths by their first segment, in first-seen order:
   ``{"posts": ("comments", "tags"), "profile": ()}``;
2. invokes each accessor once in eager mode to get its descriptor;
3. fetches every relation concurrently, each with a single ``IN`` query over
   all parents' keys, and recurses into the nested suffixes with the fetched
   children as the next level's parents;
4. once every fetch is done, assigns the children to each parent's
   ``relations`` in registration order.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import structlog

from .datastructures import frozendict
from .entity import Entity, EntitySet
from .exceptions import UnknownRelation
from .relation import RelationDescriptor, apply_constraints
from .tools import as_list, pluck, skim


if TYPE_CHECKING:
    from .options import FetchOptions

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=1024)
def parse_paths(paths: tuple[str, ...]) -> frozendict[str, tuple[str, ...]]:
    """Group dotted *paths* by first segment.

    Every path contributes its suffix, even when its first segment was
    already seen, so ``("a.b", "a.c")`` gives ``{"a": ("b", "c")}``.

    Example:
        >>> parse_paths(("posts.comments.reactions", "profile", "posts.tags"))
        <frozendict {'posts': ('comments.reactions', 'tags'), 'profile': ()}>
    """
    related: dict[str, list[str]] = {}
    for path in paths:
        name, _, rest = path.partition(".")
        suffixes = related.setdefault(name, [])
        if rest:
            suffixes.append(rest)

    return frozendict((name, tuple(suffixes)) for name, suffixes in related.items())


class RelationResolver:
    """Resolves one level of eager relations for a parent entity or set.

    Args:
        parent: Object whose ``relations`` get populated.
        target: Prototype entity the relation accessors are invoked on.
        parent_rows: Attribute rows of the parents, used to build the
            batched constraints.
    """

    __slots__ = ("handled", "parent", "parent_rows", "target")

    def __init__(
        self,
        parent: Entity | EntitySet,
        target: Entity,
        parent_rows: Sequence[Mapping[str, Any]],
    ) -> None:
        self.parent = parent
        self.target = target
        self.parent_rows = [dict(row) for row in parent_rows]
        self.handled: dict[str, Entity | EntitySet] = {}

    async def process_related(self, options: FetchOptions) -> list[dict[str, Any]]:
        """Fetch and match every relation in ``options["with_related"]``.

        Returns the parent rows this resolver was created with.

        Raises:
            UnknownRelation: A path segment has no accessor on the entity.
        """
        related = parse_paths(tuple(as_list(options.get("with_related"))))
        for name in related:
            self.handled[name] = self._relation_target(name)

        # siblings are independent; the first failure propagates and the
        # others are left to finish on their own
        results = await asyncio.gather(*(
            self._fetch(name, target, related[name], options)
            for name, target in self.handled.items()
        ))

        for (name, target), children in zip(self.handled.items(), results):
            self._match(name, target.relation, children)  # type: ignore[arg-type]

        return self.parent_rows

    def _relation_target(self, name: str) -> Entity | EntitySet:
        """Invoke accessor *name* in eager mode and return its relation target."""
        accessor = None
        if not name.startswith("_") and not hasattr(Entity, name):
            accessor = getattr(self.target, name, None)
        if not callable(accessor):
            raise UnknownRelation(name, type(self.target).__name__)

        with self.target.eager_mode():
            relation_target = accessor()

        relation = getattr(relation_target, "relation", None)
        if not isinstance(relation, RelationDescriptor):
            raise UnknownRelation(name, type(self.target).__name__)

        return relation_target

    async def _fetch(
        self,
        name: str,
        target: Entity | EntitySet,
        sub_related: tuple[str, ...],
        options: FetchOptions,
    ) -> list[Entity]:
        relation = target.relation
        assert relation is not None and relation.entity_cls is not None

        keys = pluck(self.parent_rows, relation.parent_key)  # type: ignore[arg-type]
        if not keys:
            logger.debug("relation_skipped", relation=name, reason="no_parent_keys")
            return []

        builder = apply_constraints(target, keys)
        if (connection := options.get("transacting")) is not None:
            builder.transacting(connection)
        try:
            rows = skim(await builder.select(relation.columns or ["*"]))
        finally:
            target.reset_query()

        logger.debug(
            "relation_fetched", relation=name, kind=relation.kind.value, keys=len(keys), rows=len(rows)
        )
        children = [relation.entity_cls(row, parse=True) for row in rows]

        if children and sub_related:
            nested = EntitySet.of(relation.entity_cls)(children)
            await RelationResolver(nested, relation.entity_cls(), rows).process_related(
                {**options, "with_related": list(sub_related)}
            )

        return children

    def _match(self, name: str, relation: RelationDescriptor, children: list[Entity]) -> None:
        grouped: defaultdict[Any, list[Entity]] = defaultdict(list)
        for child in children:
            grouped[child.get(relation.child_key)].append(child)

        parent = self.parent
        if isinstance(parent, EntitySet):
            for model in parent:
                model.relations[name] = _eager_related(relation, grouped, model.get(relation.parent_key))  # type: ignore[arg-type]
            return

        parent.relations[name] = _eager_related(relation, grouped, parent.get(relation.parent_key))  # type: ignore[arg-type]


def _eager_related(
    relation: RelationDescriptor, grouped: Mapping[Any, list[Entity]], key: Any
) -> Entity | EntitySet:
    matches = grouped.get(key, []) if key is not None else []
    if relation.kind.is_multi:
        assert relation.set_cls is not None
        return relation.set_cls(matches)
    if matches:
        return matches[0]

    assert relation.entity_cls is not None
    return relation.entity_cls()
