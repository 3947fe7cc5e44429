"""Expand stored ids into the display shapes clients receive."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.message import Message
from app.models.post import Post, PostComment, PostLike
from app.models.user import User
from app.schemas.messages import MessageOut
from app.schemas.posts import CommentOut, PostOut
from app.schemas.users import UserProfile, UserSummary


def user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )


def user_profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        bio=user.bio,
        created_at=user.created_at,
    )


async def user_summaries(db: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, UserSummary]:
    ids = set(user_ids)
    if not ids:
        return {}
    users = (await db.execute(sa.select(User).where(User.id.in_(ids)))).scalars().all()
    return {u.id: user_summary(u) for u in users}


def message_out(
    message: Message,
    users: Mapping[UUID, UserSummary],
    *,
    client_id: str | None = None,
) -> MessageOut:
    return MessageOut(
        id=message.id,
        sender=users[message.sender_id],
        recipient=users[message.recipient_id],
        content=message.content,
        created_at=message.created_at,
        read=message.read,
        client_id=client_id,
    )


async def message_views(db: AsyncSession, messages: list[Message]) -> list[MessageOut]:
    ids = {m.sender_id for m in messages} | {m.recipient_id for m in messages}
    users = await user_summaries(db, ids)
    return [message_out(m, users) for m in messages]


async def post_views(db: AsyncSession, posts: list[Post]) -> list[PostOut]:
    if not posts:
        return []

    post_ids = [p.id for p in posts]

    like_rows = (
        await db.execute(
            sa.select(PostLike.post_id, PostLike.user_id)
            .where(PostLike.post_id.in_(post_ids))
            .order_by(PostLike.created_at.asc(), PostLike.id.asc())
        )
    ).all()
    likes: dict[UUID, list[UUID]] = {pid: [] for pid in post_ids}
    for row in like_rows:
        likes[row.post_id].append(row.user_id)

    comment_rows = (
        await db.execute(
            sa.select(PostComment)
            .where(PostComment.post_id.in_(post_ids))
            .order_by(PostComment.created_at.asc(), PostComment.id.asc())
        )
    ).scalars().all()

    author_ids = {p.author_id for p in posts} | {c.author_id for c in comment_rows}
    users = await user_summaries(db, author_ids)

    comments: dict[UUID, list[CommentOut]] = {pid: [] for pid in post_ids}
    for c in comment_rows:
        comments[c.post_id].append(
            CommentOut(id=c.id, author=users[c.author_id], text=c.text, created_at=c.created_at)
        )

    return [
        PostOut(
            id=p.id,
            author=users[p.author_id],
            content=p.content,
            image_url=p.image_url,
            likes=likes[p.id],
            comments=comments[p.id],
            created_at=p.created_at,
        )
        for p in posts
    ]
