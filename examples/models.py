"""Example entities shared by the usage examples.

Tables are expected to exist already; sqla_relations addresses them by name
and never reflects or creates schema.
"""

from __future__ import annotations

from sqla_relations import DatabaseConfig, Entity, EntitySet, Registry


registry = Registry()
db = registry.create(config=DatabaseConfig(url="sqlite+aiosqlite:///example.db"))


class Base(Entity):
    database = db


class User(Base):
    table_name = "users"

    def posts(self) -> EntitySet:
        return self.has_many(Post)

    def profile(self) -> Entity:
        return self.has_one(Profile)

    def roles(self) -> EntitySet:
        # join table "role_user", extra column "level" selected as "pivot_level"
        return self.belongs_to_many(Role).pivot.with_pivot("level")  # type: ignore[union-attr]


class Profile(Base):
    table_name = "profiles"


class Post(Base):
    table_name = "posts"
    has_timestamps = True

    def author(self) -> Entity:
        return self.belongs_to(User)

    def comments(self) -> EntitySet:
        return self.has_many(CommentSet)


class Comment(Base):
    table_name = "comments"

    def reactions(self) -> EntitySet:
        return self.has_many(Reaction)


class CommentSet(EntitySet):
    entity = Comment
    comparator = "created_at"


class Reaction(Base):
    table_name = "reactions"


class Role(Base):
    table_name = "roles"

    def users(self) -> EntitySet:
        return self.belongs_to_many(User)


class Category(Base):
    table_name = "categories"

    def children(self) -> EntitySet:
        return self.has_many(Category, foreign_key="parent_id")

    def parent(self) -> Entity:
        return self.belongs_to(Category, other_key="parent_id")
