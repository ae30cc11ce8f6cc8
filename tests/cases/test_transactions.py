from __future__ import annotations

import pytest

from sqla_relations import Database, EntitySet

from ..conftest import StatementLog
from ..models import Post, User


pytestmark = pytest.mark.anyio


class TestTransactions:
    async def test_commit(self, database: Database, statements: StatementLog) -> None:
        async with database.transaction() as conn:
            user = await User({"name": "dave"}).save(transacting=conn)
            await user.roles().pivot.attach([5, 6], transacting=conn)  # type: ignore[union-attr]

        roles = await user.roles().fetch()
        assert set(roles.pluck("name")) == {"admin", "editor"}

    async def test_rollback(self, database: Database, statements: StatementLog) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with database.transaction() as conn:
                await User({"name": "dave"}).save(transacting=conn)
                raise RuntimeError("boom")

        users = await EntitySet.of(User)().fetch()
        assert len(users) == 3

    async def test_eager_load_inside_transaction(self, database: Database, statements: StatementLog) -> None:
        async with database.transaction() as conn:
            await Post({"title": "Charlie Post", "user_id": 3}).save(transacting=conn)
            users = await EntitySet.of(User)().fetch(transacting=conn, with_related=["posts", "profile"])

            charlie = users.get(3)
            assert charlie is not None
            assert charlie.related("posts").pluck("title") == ["Charlie Post"]  # type: ignore[union-attr]
            assert "sqla_relations.lock" in conn.info

    async def test_destroy_inside_transaction(self, database: Database, statements: StatementLog) -> None:
        async with database.transaction() as conn:
            await Post({"id": 12}).destroy(transacting=conn)
            await User({"id": 2}).roles().pivot.detach(transacting=conn)  # type: ignore[union-attr]

        bob = await User({"id": 2}).fetch(with_related=["posts", "roles"])
        assert len(bob.related("posts")) == 0  # type: ignore[arg-type]
        assert len(bob.related("roles")) == 0  # type: ignore[arg-type]
