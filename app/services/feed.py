from __future__ import annotations

from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Forbidden, InvalidInput, NotFound
from app.db.transaction import run_in_transaction
from app.models.post import Post, PostComment, PostLike
from app.realtime import events
from app.realtime.bus import Notifier, fan_out
from app.schemas.posts import CommentOut, PostOut
from app.services.friends import friend_ids
from app.services.users import get_user
from app.services.views import post_views


async def _get_post(db: AsyncSession, post_id: UUID) -> Post:
    post = (await db.execute(sa.select(Post).where(Post.id == post_id))).scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")
    return post


async def _get_own_post(db: AsyncSession, post_id: UUID, user_id: UUID) -> Post:
    # Someone else's post reads as missing, not forbidden.
    q = sa.select(Post).where(Post.id == post_id, Post.author_id == user_id)
    post = (await db.execute(q)).scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")
    return post


async def _post_view(db: AsyncSession, post: Post) -> PostOut:
    return (await post_views(db, [post]))[0]


async def get_feed(db: AsyncSession, user_id: UUID) -> list[PostOut]:
    authors = [user_id, *await friend_ids(db, user_id)]
    q = (
        sa.select(Post)
        .where(Post.author_id.in_(authors))
        .order_by(Post.created_at.desc(), Post.id.desc())
    )
    posts = list((await db.execute(q)).scalars().all())
    return await post_views(db, posts)


async def list_posts_by_user(db: AsyncSession, author_id: UUID) -> list[PostOut]:
    await get_user(db, author_id)
    q = (
        sa.select(Post)
        .where(Post.author_id == author_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
    )
    posts = list((await db.execute(q)).scalars().all())
    return await post_views(db, posts)


async def create_post(
    db: AsyncSession,
    notifier: Notifier,
    user_id: UUID,
    *,
    content: str | None,
    image_url: str | None,
) -> PostOut:
    content = (content or "").strip()
    image_url = (image_url or "").strip() or None
    if not content and not image_url:
        raise InvalidInput("Content or image required")

    async def _op() -> PostOut:
        post = Post(author_id=user_id, content=content, image_url=image_url)
        db.add(post)
        await db.flush()
        return await _post_view(db, post)

    view = await run_in_transaction(db, _op)

    audience = [user_id, *await friend_ids(db, user_id)]
    await fan_out(notifier, audience, events.POST_CREATED, view.model_dump(mode="json"))
    return view


async def update_post(db: AsyncSession, user_id: UUID, post_id: UUID, *, content: str | None) -> PostOut:
    async def _op() -> PostOut:
        post = await _get_own_post(db, post_id, user_id)
        if content and content.strip():
            post.content = content.strip()
            await db.flush()
        return await _post_view(db, post)

    return await run_in_transaction(db, _op)


async def delete_post(db: AsyncSession, user_id: UUID, post_id: UUID) -> None:
    async def _op() -> None:
        post = await _get_own_post(db, post_id, user_id)
        await db.execute(sa.delete(PostLike).where(PostLike.post_id == post.id))
        await db.execute(sa.delete(PostComment).where(PostComment.post_id == post.id))
        await db.delete(post)
        await db.flush()

    await run_in_transaction(db, _op)


async def toggle_like(db: AsyncSession, notifier: Notifier, user_id: UUID, post_id: UUID) -> tuple[PostOut, bool]:
    """Add the like if absent, remove it if present. Returns the post and whether it is now liked."""

    async def _op() -> tuple[PostOut, bool]:
        post = await _get_post(db, post_id)
        existing = (
            await db.execute(
                sa.select(PostLike).where(PostLike.post_id == post.id, PostLike.user_id == user_id)
            )
        ).scalar_one_or_none()

        if existing is not None:
            await db.delete(existing)
            liked = False
        else:
            db.add(PostLike(post_id=post.id, user_id=user_id))
            liked = True

        await db.flush()

        return await _post_view(db, post), liked

    async def _current() -> PostOut:
        return await _post_view(db, await _get_post(db, post_id))

    try:
        view, liked = await run_in_transaction(db, _op)
    except IntegrityError:
        # A concurrent toggle by the same user inserted the like first; it also
        # sent the notification.
        return await run_in_transaction(db, _current), True

    if view.author.id != user_id:
        await fan_out(
            notifier,
            [view.author.id],
            events.POST_LIKED,
            {"post_id": str(view.id), "user_id": str(user_id), "liked": liked, "likes": [str(u) for u in view.likes]},
        )
    return view, liked


async def add_comment(
    db: AsyncSession,
    notifier: Notifier,
    user_id: UUID,
    post_id: UUID,
    *,
    text: str | None,
) -> tuple[PostOut, CommentOut]:
    text = (text or "").strip()
    if not text:
        raise InvalidInput("Text required")

    async def _op() -> tuple[PostOut, CommentOut]:
        post = await _get_post(db, post_id)
        comment = PostComment(post_id=post.id, author_id=user_id, text=text)
        db.add(comment)
        await db.flush()
        view = await _post_view(db, post)
        created = next(c for c in view.comments if c.id == comment.id)
        return view, created

    view, created = await run_in_transaction(db, _op)

    # Post author plus everyone who commented before, minus the commenter.
    participants = [view.author.id, *(c.author.id for c in view.comments)]
    await fan_out(
        notifier,
        [uid for uid in participants if uid != user_id],
        events.POST_COMMENTED,
        {"post_id": str(view.id), "comment": created.model_dump(mode="json")},
    )
    return view, created


async def delete_comment(db: AsyncSession, user_id: UUID, post_id: UUID, comment_id: UUID) -> PostOut:
    async def _op() -> PostOut:
        post = await _get_post(db, post_id)
        comment = (
            await db.execute(
                sa.select(PostComment).where(PostComment.id == comment_id, PostComment.post_id == post.id)
            )
        ).scalar_one_or_none()
        if comment is None:
            raise NotFound("Comment not found")
        if comment.author_id != user_id:
            raise Forbidden("Not authorized to delete this comment")

        await db.delete(comment)
        await db.flush()
        return await _post_view(db, post)

    return await run_in_transaction(db, _op)
