from __future__ import annotations

from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound
from app.db.transaction import run_in_transaction
from app.models.user import User


async def get_user(db: AsyncSession, user_id: UUID) -> User:
    user = (await db.execute(sa.select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def get_user_pair(db: AsyncSession, a: UUID, b: UUID) -> tuple[User, User]:
    rows = (await db.execute(sa.select(User).where(User.id.in_({a, b})))).scalars().all()
    by_id = {u.id: u for u in rows}
    if a not in by_id or b not in by_id:
        raise NotFound("User not found")
    return by_id[a], by_id[b]


async def _username_taken(db: AsyncSession, username: str, user_id: UUID) -> bool:
    q = sa.select(User.id).where(User.username == username, User.id != user_id)
    return (await db.execute(q)).scalar_one_or_none() is not None


async def upsert_profile(
    db: AsyncSession,
    user_id: UUID,
    *,
    username: str,
    display_name: str,
    avatar_url: str | None,
    bio: str | None,
) -> User:
    async def _op() -> User:
        if await _username_taken(db, username, user_id):
            raise Conflict("Username already taken")

        user = (await db.execute(sa.select(User).where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            user = User(id=user_id, username=username, display_name=display_name)
            db.add(user)

        user.username = username
        user.display_name = display_name.strip()
        user.avatar_url = avatar_url
        user.bio = bio
        await db.flush()
        return user

    try:
        return await run_in_transaction(db, _op)
    except IntegrityError as exc:
        # Lost a race; find out which constraint it was.
        if await _username_taken(db, username, user_id):
            raise Conflict("Username already taken") from exc
        # The same identity's profile was created concurrently; update that row.
        return await run_in_transaction(db, _op)
