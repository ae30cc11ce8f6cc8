from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from functools import lru_cache
from typing import Any, Final

import inflect


PIVOT_PREFIX: Final[str] = "_pivot_"

_inflect = inflect.engine()


@lru_cache(maxsize=512)
def singularize(word: str) -> str:
    """Return the singular form of *word*, or *word* if it is already singular.

    Example:
        >>> singularize("users")
        'user'
        >>> singularize("categories")
        'category'
    """
    return _inflect.singular_noun(word) or word


def default_foreign_key(table_name: str | None) -> str:
    """Foreign key column name derived from a table name (``users`` -> ``user_id``)."""
    if not table_name:
        raise ValueError("Cannot derive a key column without a table name; set `table_name`")
    return f"{singularize(table_name)}_id"


def default_join_table(*table_names: str) -> str:
    """Join table name for a many-to-many pair (``users``, ``roles`` -> ``role_user``)."""
    return "_".join(sorted(singularize(name) for name in table_names))


def pivot_alias(column: str) -> str:
    """Alias used for a join-table key column in many-to-many selects."""
    return f"{PIVOT_PREFIX}{column}"


def skim(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Copy each row into a plain ``dict`` of its own keys.

    Driver rows (``RowMapping``, proxies, dict subclasses) may carry extra
    behaviour; downstream code only ever sees plain dictionaries.
    """
    return [{key: row[key] for key in row.keys()} for row in rows]


def pluck(rows: Iterable[Mapping[str, Any]], key: str) -> list[Any]:
    """Distinct, non-``None`` values of *key* across *rows*, in first-seen order."""
    seen: set[Any] = set()
    out: list[Any] = []
    for row in rows:
        value = row.get(key)
        if value is None or value in seen:
            continue
        seen.add(value)
        out.append(value)

    return out


def as_list(value: Any) -> list[Any]:
    """Wrap a scalar in a list; ``None`` becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
        return [value]

    return list(value)
