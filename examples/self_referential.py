"""Self-referential relation loading example.

Demonstrates loading parent/children on the same entity (Category).
Both relations name the key explicitly: the derived default would be
``category_id``.
"""

from __future__ import annotations

from sqla_relations import EntitySet

from .models import Category


async def get_categories_with_children() -> EntitySet:
    return await EntitySet.of(Category)().fetch(with_related="children")


async def get_categories_with_parent() -> EntitySet:
    return await EntitySet.of(Category)().fetch(with_related="parent")


async def get_tree(depth: int = 3) -> EntitySet:
    # "children.children.children": one query per level
    return await EntitySet.of(Category)().fetch(with_related=".".join(["children"] * depth))
