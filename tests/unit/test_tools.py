from __future__ import annotations

import pytest

from sqla_relations.tools import (
    as_list,
    default_foreign_key,
    default_join_table,
    pivot_alias,
    pluck,
    singularize,
    skim,
)


class TestSingularize:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [("users", "user"), ("posts", "post"), ("categories", "category"), ("user", "user")],
    )
    def test_singular(self, word: str, expected: str) -> None:
        assert singularize(word) == expected


class TestDefaultKeys:
    def test_foreign_key(self) -> None:
        assert default_foreign_key("users") == "user_id"

    def test_foreign_key_irregular_plural(self) -> None:
        assert default_foreign_key("categories") == "category_id"

    def test_foreign_key_needs_table(self) -> None:
        with pytest.raises(ValueError, match="table_name"):
            default_foreign_key(None)

    def test_join_table_sorted(self) -> None:
        assert default_join_table("users", "roles") == "role_user"
        assert default_join_table("roles", "users") == "role_user"

    def test_pivot_alias(self) -> None:
        assert pivot_alias("user_id") == "_pivot_user_id"


class TestPluck:
    def test_distinct_in_first_seen_order(self) -> None:
        rows = [{"k": 3}, {"k": 1}, {"k": 3}, {"k": 2}]
        assert pluck(rows, "k") == [3, 1, 2]

    def test_skips_none_and_missing(self) -> None:
        rows = [{"k": None}, {}, {"k": 1}]
        assert pluck(rows, "k") == [1]


class TestAsList:
    def test_none(self) -> None:
        assert as_list(None) == []

    def test_scalar(self) -> None:
        assert as_list(5) == [5]

    def test_string_is_not_split(self) -> None:
        assert as_list("posts") == ["posts"]

    def test_mapping_is_wrapped(self) -> None:
        assert as_list({"level": "lvl"}) == [{"level": "lvl"}]

    def test_sequence(self) -> None:
        assert as_list((1, 2)) == [1, 2]


class TestSkim:
    def test_plain_dicts(self) -> None:
        class Row(dict):
            pass

        result = skim([Row(a=1, b=2)])

        assert result == [{"a": 1, "b": 2}]
        assert type(result[0]) is dict
