from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only, hashable mapping that keeps insertion order.

    Parsed relation paths are returned as ``frozendict`` instances so they can
    be cached with ``lru_cache`` and shared between resolver calls without any
    risk of one caller mutating another's batch.

    Example:
        >>> fd = frozendict({"posts": ("comments",), "profile": ()})
        >>> list(fd)
        ['posts', 'profile']
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        # values may be unhashable until someone actually needs the hash
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash
