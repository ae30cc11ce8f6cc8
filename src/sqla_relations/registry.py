"""Named database instances.

Applications create one ``Registry`` at startup, register a ``Database`` per
connection URL and bind entity classes to it::

    registry = Registry()
    db = registry.create("default", DatabaseConfig(url="sqlite+aiosqlite:///app.db"))

    class User(Entity):
        table_name = "users"
        database = db

    ...
    await registry.teardown()

There is no process-wide default instance: the registry is a plain value owned
by whoever created it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, final

import structlog
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .builder import SQLAlchemyBuilder
from .datastructures import frozendict
from .exceptions import DatabaseExists, DatabaseNotFound


logger = structlog.get_logger(__name__)

DEFAULT_NAME = "default"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Connection settings passed to ``create_async_engine``."""

    url: str
    echo: bool = False
    pool_pre_ping: bool = False
    connect_args: Mapping[str, Any] = field(default_factory=frozendict)

    def create_engine(self) -> AsyncEngine:
        return create_async_engine(
            self.url,
            echo=self.echo,
            pool_pre_ping=self.pool_pre_ping,
            connect_args=dict(self.connect_args),
        )


@final
class Database:
    """One database connection: hands out query builders and transactions."""

    __slots__ = ("engine", "name")

    def __init__(self, name: str, engine: AsyncEngine) -> None:
        self.name = name
        self.engine = engine

    def builder(self, table: str) -> SQLAlchemyBuilder:
        """Create a fresh single-use query builder for *table*."""
        return SQLAlchemyBuilder(table, self.engine)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Open a transaction and yield its connection.

        Pass the yielded connection as ``transacting=`` to fetch, save,
        destroy, load, attach or detach. The transaction commits when the
        block exits normally and rolls back if it raises.
        """
        async with self.engine.begin() as conn:
            yield conn

    async def dispose(self) -> None:
        await self.engine.dispose()

    def __repr__(self) -> str:
        return f"<Database {self.name!r} {self.engine.url!r}>"


class Registry:
    """Explicit registry of named ``Database`` instances."""

    def __init__(self) -> None:
        self._databases: dict[str, Database] = {}

    def create(
        self,
        name: str = DEFAULT_NAME,
        config: DatabaseConfig | None = None,
        *,
        engine: AsyncEngine | None = None,
    ) -> Database:
        """Register a database under *name*, from a config or an existing engine.

        Raises:
            DatabaseExists: If *name* is already registered.
            ValueError: If neither or both of *config* and *engine* are given.
        """
        if name in self._databases:
            raise DatabaseExists(name)
        if (config is None) == (engine is None):
            raise ValueError("Pass exactly one of `config` or `engine`")

        database = Database(name, engine if engine is not None else config.create_engine())  # type: ignore[union-attr]
        self._databases[name] = database
        logger.info("database_registered", name=name, url=str(database.engine.url))

        return database

    def get(self, name: str = DEFAULT_NAME) -> Database:
        try:
            return self._databases[name]
        except KeyError:
            raise DatabaseNotFound(name) from None

    async def teardown(self, name: str | None = None) -> None:
        """Dispose and unregister one database, or all of them when *name* is ``None``."""
        names = list(self._databases) if name is None else [self.get(name).name]
        for key in names:
            database = self._databases.pop(key)
            await database.dispose()
            logger.info("database_disposed", name=key)

    @property
    def names(self) -> list[str]:
        return sorted(self._databases)

    def __contains__(self, name: object) -> bool:
        return name in self._databases

    def __len__(self) -> int:
        return len(self._databases)
