from __future__ import annotations

import pytest

from sqla_relations import EntitySet

from ..conftest import StatementLog
from ..models import Post, PostSet, Profile, User


pytestmark = pytest.mark.anyio


class TestBelongsTo:
    async def test_batched_on_owner_keys(self, statements: StatementLog) -> None:
        posts = await PostSet().fetch()
        statements.clear()

        await posts.load("author")

        assert len(statements.selects) == 1
        assert "users.id IN" in statements.selects[0]
        assert posts.get(10).related("author").get("name") == "alice"  # type: ignore[union-attr]
        assert posts.get(12).related("author").get("name") == "bob"  # type: ignore[union-attr]

    async def test_shared_parent_instances_per_child(self, statements: StatementLog) -> None:
        posts = await PostSet().fetch(with_related="author")

        first = posts.get(10).related("author")  # type: ignore[union-attr]
        second = posts.get(11).related("author")  # type: ignore[union-attr]
        assert first is second

    async def test_null_key_gets_empty_entity(self, statements: StatementLog) -> None:
        posts = PostSet([{"id": 99, "user_id": None}])

        await posts.load("author")

        author = posts[0].related("author")
        assert isinstance(author, User)
        assert author.is_new()
        assert statements.statements == []

    async def test_constrained_fetch(self, statements: StatementLog) -> None:
        post = await Post({"id": 12}).fetch()
        author = await post.author().fetch()

        assert author.get("name") == "bob"

    async def test_default_other_key(self, statements: StatementLog) -> None:
        profile = await Profile({"id": 1}).fetch(with_related="user")

        assert profile.related("user").get("name") == "alice"  # type: ignore[union-attr]


class TestHasOne:
    async def test_batched(self, statements: StatementLog) -> None:
        users = await EntitySet.of(User)().fetch()
        statements.clear()

        await users.load("profile")

        assert len(statements.selects) == 1
        alice = users.get(1)
        bob = users.get(2)
        assert alice is not None and bob is not None
        assert alice.related("profile").get("bio") == "Alice bio"  # type: ignore[union-attr]
        assert isinstance(bob.related("profile"), Profile)
        assert bob.related("profile").is_new()  # type: ignore[union-attr]

    async def test_constrained_fetch(self, statements: StatementLog) -> None:
        profile = await User({"id": 1}).profile().fetch()

        assert profile.get("bio") == "Alice bio"
        assert "LIMIT" in statements.selects[0].upper()
