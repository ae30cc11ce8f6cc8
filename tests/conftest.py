from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sqla_relations import Database, Registry
from sqla_relations.eager import parse_paths
from sqla_relations.tools import singularize

from .models import Model, comments, metadata, posts, profiles, role_user, roles, users


pytestmark = pytest.mark.anyio


class StatementLog:
    """Records every SQL statement the engine sends to the driver."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __call__(self, conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        self.statements.append(statement)

    @property
    def selects(self) -> list[str]:
        return [s for s in self.statements if s.lstrip().upper().startswith("SELECT")]

    def clear(self) -> None:
        self.statements.clear()


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    # a file, not :memory:, so pooled connections share data
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def database(engine: AsyncEngine) -> AsyncIterator[Database]:
    registry = Registry()
    db = registry.create(engine=engine)
    Model.database = db
    yield db
    Model.database = None


@pytest.fixture
async def seed_data(database: Database) -> None:
    async with database.engine.begin() as conn:
        await conn.execute(users.insert(), [
            {"id": 1, "name": "alice"},
            {"id": 2, "name": "bob"},
            {"id": 3, "name": "charlie"},
        ])
        await conn.execute(profiles.insert(), [{"id": 1, "bio": "Alice bio", "user_id": 1}])
        await conn.execute(posts.insert(), [
            {"id": 10, "title": "Alice Post 1", "user_id": 1},
            {"id": 11, "title": "Alice Post 2", "user_id": 1},
            {"id": 12, "title": "Bob Post 1", "user_id": 2},
        ])
        await conn.execute(comments.insert(), [
            {"id": 100, "body": "Great post!", "post_id": 10},
            {"id": 101, "body": "Nice work", "post_id": 10},
            {"id": 102, "body": "Hmm", "post_id": 12},
        ])
        await conn.execute(roles.insert(), [
            {"id": 5, "name": "admin"},
            {"id": 6, "name": "editor"},
            {"id": 7, "name": "viewer"},
        ])
        await conn.execute(role_user.insert(), [
            {"user_id": 1, "role_id": 5, "level": 3},
            {"user_id": 1, "role_id": 6, "level": 1},
            {"user_id": 2, "role_id": 6, "level": 2},
        ])


@pytest.fixture
def statements(engine: AsyncEngine, seed_data: None) -> StatementLog:
    """Statement log started after seeding, so only statements under test are counted."""
    log = StatementLog()
    sa.event.listen(engine.sync_engine, "before_cursor_execute", log)
    return log


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    parse_paths.cache_clear()
    singularize.cache_clear()
