from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from sqla_relations import (
    Database,
    DatabaseConfig,
    DatabaseExists,
    DatabaseNotFound,
    Registry,
    SQLAlchemyBuilder,
)


pytestmark = pytest.mark.anyio

URL = "sqlite+aiosqlite://"


class TestRegistry:
    async def test_create_from_config(self) -> None:
        registry = Registry()
        db = registry.create("main", DatabaseConfig(url=URL))

        assert isinstance(db, Database)
        assert registry.get("main") is db
        assert "main" in registry
        assert registry.names == ["main"]
        await registry.teardown()

    async def test_create_from_engine(self) -> None:
        engine = create_async_engine(URL)
        registry = Registry()
        db = registry.create(engine=engine)

        assert db.engine is engine
        assert registry.get() is db
        await registry.teardown()

    async def test_duplicate_name(self) -> None:
        registry = Registry()
        registry.create(config=DatabaseConfig(url=URL))

        with pytest.raises(DatabaseExists, match="default"):
            registry.create(config=DatabaseConfig(url=URL))
        await registry.teardown()

    async def test_needs_exactly_one_source(self) -> None:
        registry = Registry()
        with pytest.raises(ValueError, match="exactly one"):
            registry.create("x")
        with pytest.raises(ValueError, match="exactly one"):
            registry.create("x", DatabaseConfig(url=URL), engine=create_async_engine(URL))

    def test_unknown_name(self) -> None:
        with pytest.raises(DatabaseNotFound, match="missing"):
            Registry().get("missing")

    def test_not_found_is_lookup_error(self) -> None:
        with pytest.raises(LookupError):
            Registry().get("missing")

    async def test_teardown_one(self) -> None:
        registry = Registry()
        registry.create("a", DatabaseConfig(url=URL))
        registry.create("b", DatabaseConfig(url=URL))

        await registry.teardown("a")

        assert registry.names == ["b"]
        assert len(registry) == 1
        await registry.teardown()
        assert len(registry) == 0

    async def test_registries_are_independent(self) -> None:
        first, second = Registry(), Registry()
        first.create(config=DatabaseConfig(url=URL))

        assert "default" not in second
        await first.teardown()


class TestDatabase:
    async def test_builder_is_fresh_each_call(self) -> None:
        db = Database("main", create_async_engine(URL))
        first, second = db.builder("users"), db.builder("users")

        assert isinstance(first, SQLAlchemyBuilder)
        assert first is not second
        assert first.table == "users"
        await db.dispose()
