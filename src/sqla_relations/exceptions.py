"""Exception hierarchy for sqla_relations.

Domain failures are raised as the classes below. Errors coming from
SQLAlchemy or the database driver are never wrapped or retried here; they
propagate to the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class RelationsError(Exception):
    """Base exception for all sqla_relations errors."""


# --- Relations ---


class RelationError(RelationsError):
    """Base for relation declaration and resolution errors."""


class RelationTypeMismatch(RelationError, TypeError):
    """Raised when a relation accessor is given a target of the wrong shape."""

    def __init__(self, kind: str, target: Any, expected: str) -> None:
        self.kind = kind
        self.target = target
        super().__init__(
            f"The `{kind}` related object must be {expected}, got {target!r}"
        )


class UnknownRelation(RelationError, LookupError):
    """Raised when a requested relation name has no accessor on the entity."""

    def __init__(self, name: str, entity: str) -> None:
        self.name = name
        self.entity = entity
        super().__init__(f"'{name}' is not defined on {entity}")


class UnboundRelation(RelationError):
    """Raised when a join-table operation runs without a persisted owner."""

    def __init__(self, join_table: str, action: str) -> None:
        self.join_table = join_table
        self.action = action
        super().__init__(
            f"Cannot {action} rows in '{join_table}': the owning entity has no key value"
        )


# --- Fetching ---


class FetchError(RelationsError):
    """Base for fetch errors."""


class EmptyResponse(FetchError):
    """Raised when a fetch with ``require=True`` returns no rows."""

    def __init__(self, table: str | None) -> None:
        self.table = table
        super().__init__(f"EmptyResponse: no rows returned from '{table}'")


# --- Destroy ---


class DestroyError(RelationsError):
    """Base for delete errors."""


class DestroyWithoutConstraint(DestroyError):
    """Raised when a delete would run with neither an id nor a where clause."""

    def __init__(self, table: str | None) -> None:
        self.table = table
        super().__init__(
            f"Rows in '{table}' cannot be destroyed without a where clause or an id attribute"
        )


# --- Registry ---


class RegistryError(RelationsError):
    """Base for database registry errors."""


class DatabaseExists(RegistryError):
    """Raised when a database name is registered twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"A '{name}' database instance already exists")


class DatabaseNotFound(RegistryError, LookupError):
    """Raised when looking up an unregistered database name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Database not found: '{name}'")


class DatabaseNotConfigured(RegistryError):
    """Raised when an entity type has no database bound to it."""

    def __init__(self, owner: str) -> None:
        self.owner = owner
        super().__init__(f"{owner} has no database; set `database` on the entity class")
