from __future__ import annotations

import pytest

from sqla_relations.datastructures import frozendict


class TestFrozendictInit:
    def test_from_dict(self) -> None:
        fd: frozendict[str, tuple[str, ...]] = frozendict({"posts": ("comments",), "profile": ()})
        assert fd["posts"] == ("comments",)
        assert fd["profile"] == ()

    def test_from_kwargs(self) -> None:
        fd: frozendict[str, int] = frozendict(x=10, y=20)
        assert fd["x"] == 10

    def test_from_pairs_keeps_order(self) -> None:
        fd: frozendict[str, str] = frozendict([("k2", "v2"), ("k1", "v1")])
        assert list(fd) == ["k2", "k1"]


class TestFrozendictImmutability:
    def test_no_setitem(self) -> None:
        fd: frozendict[str, int] = frozendict({"a": 1})
        with pytest.raises(TypeError):
            fd["a"] = 2  # type: ignore[index]

    def test_no_new_attributes(self) -> None:
        fd: frozendict[str, int] = frozendict({"a": 1})
        with pytest.raises(AttributeError):
            fd.extra = 1  # type: ignore[attr-defined]


class TestFrozendictHash:
    def test_equal_dicts_same_hash(self) -> None:
        fd1: frozendict[str, int] = frozendict({"a": 1, "b": 2})
        fd2: frozendict[str, int] = frozendict({"b": 2, "a": 1})
        assert hash(fd1) == hash(fd2)

    def test_usable_in_set(self) -> None:
        s = {frozendict({"a": ("b",)}), frozendict({"a": ("b",)})}
        assert len(s) == 1

    def test_unhashable_values_fail_only_on_hash(self) -> None:
        fd: frozendict[str, list[int]] = frozendict({"a": [1]})
        assert fd["a"] == [1]
        with pytest.raises(TypeError):
            hash(fd)


class TestFrozendictEquality:
    def test_equal_frozendicts(self) -> None:
        assert frozendict({"a": 1}) == frozendict({"a": 1})

    def test_equal_to_dict(self) -> None:
        assert frozendict({"a": 1, "b": 2}) == {"a": 1, "b": 2}

    def test_not_equal_to_other_types(self) -> None:
        assert frozendict({"a": 1}) != [("a", 1)]


class TestFrozendictRepr:
    def test_repr_format(self) -> None:
        r = repr(frozendict({"a": 1}))
        assert r.startswith("<frozendict")
        assert "'a': 1" in r
