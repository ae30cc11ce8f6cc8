"""Relation mapping and batched eager loading on SQLAlchemy Core.

sqla_relations maps rows onto ``Entity`` objects and declares relations as
plain methods (``has_one``, ``has_many``, ``belongs_to``,
``belongs_to_many``). Register a ``Database`` in a ``Registry`` at startup,
bind entity classes to it, then ``await users.load("posts.comments")`` to
eager load nested relations with one query per relation per level.
"""

from ._version import __version__, __version_tuple__
from .builder import InsertResult, QueryBuilder, SQLAlchemyBuilder
from .datastructures import frozendict
from .dispatcher import QueryDispatcher
from .eager import RelationResolver, parse_paths
from .entity import Entity, EntitySet
from .events import Events
from .exceptions import (
    DatabaseExists,
    DatabaseNotConfigured,
    DatabaseNotFound,
    DestroyWithoutConstraint,
    EmptyResponse,
    RelationError,
    RelationsError,
    RelationTypeMismatch,
    UnboundRelation,
    UnknownRelation,
)
from .options import FetchOptions
from .registry import Database, DatabaseConfig, Registry
from .relation import PivotOperations, RelationDescriptor, RelationKind
from .tools import default_foreign_key, default_join_table, singularize


__all__ = (
    "Database",
    "DatabaseConfig",
    "DatabaseExists",
    "DatabaseNotConfigured",
    "DatabaseNotFound",
    "DestroyWithoutConstraint",
    "EmptyResponse",
    "Entity",
    "EntitySet",
    "Events",
    "FetchOptions",
    "InsertResult",
    "PivotOperations",
    "QueryBuilder",
    "QueryDispatcher",
    "Registry",
    "RelationDescriptor",
    "RelationError",
    "RelationKind",
    "RelationResolver",
    "RelationTypeMismatch",
    "RelationsError",
    "SQLAlchemyBuilder",
    "UnboundRelation",
    "UnknownRelation",
    "__version__",
    "__version_tuple__",
    "default_foreign_key",
    "default_join_table",
    "frozendict",
    "parse_paths",
    "singularize",
)
