"""Basic sqla-relations usage examples.

Demonstrates eager loading on sets and single entities, dotted paths,
many-to-many pivots, persistence and transactions.

NOTE: This file is illustrative; it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

from sqla_relations import EntitySet

from .models import Post, Role, User, db, registry


# ── 1. Eager loading on a set ───────────────────────────────────────


async def get_users_with_posts() -> EntitySet:
    # two queries: users, then posts WHERE user_id IN (...)
    return await EntitySet.of(User)().fetch(with_related="posts")


async def get_users_with_all() -> EntitySet:
    users = await EntitySet.of(User)().fetch()
    # posts, profile and roles are fetched concurrently
    return await users.load(["posts", "profile", "roles"])


# ── 2. Dotted / deep paths ──────────────────────────────────────────


async def get_users_deep() -> EntitySet:
    # one query per level, whatever the number of users
    return await EntitySet.of(User)().fetch(with_related="posts.comments.reactions")


# ── 3. Single entities and constrained relations ────────────────────


async def get_user(user_id: int) -> User:
    return await User({"id": user_id}).fetch(require=True, with_related="profile")


async def get_recent_posts(user: User) -> EntitySet:
    posts = user.posts()
    posts.query().where("created_at", ">", "2024-01-01")
    return await posts.fetch()


async def get_posts_with_author() -> EntitySet:
    return await EntitySet.of(Post)().fetch(with_related="author")


# ── 4. Many-to-many pivots ──────────────────────────────────────────


async def grant_roles(user: User, *role_ids: int) -> None:
    await user.roles().pivot.attach([{"role_id": role_id, "level": 1} for role_id in role_ids])  # type: ignore[union-attr]


async def revoke_role(user: User, role: Role) -> None:
    await user.roles().pivot.detach(role)  # type: ignore[union-attr]


async def role_levels(user: User) -> dict[str, int]:
    roles = await user.roles().fetch()
    return {role.get("name"): role.get("pivot_level") for role in roles}


# ── 5. Persistence and transactions ─────────────────────────────────


async def publish(author: User, title: str) -> Post:
    async with db.transaction() as conn:
        post = await Post({"title": title, "user_id": author.id}).save(transacting=conn)
        await author.save({"last_post_id": post.id}, partial=True, transacting=conn)

    return post


async def shutdown() -> None:
    await registry.teardown()
