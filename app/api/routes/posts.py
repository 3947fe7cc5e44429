from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_event_bus
from app.models.user import User
from app.realtime.bus import EventBus
from app.schemas.posts import (
    CreateCommentRequest,
    CreatePostRequest,
    DeletePostResponse,
    LikeToggleResponse,
    PostOut,
    UpdatePostRequest,
)
from app.services.feed import (
    add_comment,
    create_post,
    delete_comment,
    delete_post,
    get_feed,
    list_posts_by_user,
    toggle_like,
    update_post,
)

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("/feed", response_model=list[PostOut])
async def feed_route(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await get_feed(db, user.id)


@router.get("/user/{user_id}", response_model=list[PostOut])
async def posts_by_user_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return await list_posts_by_user(db, user_id)


@router.post("", response_model=PostOut, status_code=201)
async def create_post_route(
    payload: CreatePostRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    return await create_post(db, bus, user.id, content=payload.content, image_url=payload.image_url)


@router.put("/{post_id}", response_model=PostOut)
async def update_post_route(
    post_id: UUID,
    payload: UpdatePostRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await update_post(db, user.id, post_id, content=payload.content)


@router.delete("/{post_id}", response_model=DeletePostResponse)
async def delete_post_route(
    post_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await delete_post(db, user.id, post_id)
    return DeletePostResponse(ok=True)


@router.post("/{post_id}/like", response_model=LikeToggleResponse)
async def toggle_like_route(
    post_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    post, liked = await toggle_like(db, bus, user.id, post_id)
    return LikeToggleResponse(post=post, liked=liked)


@router.post("/{post_id}/comments", response_model=PostOut, status_code=201)
async def add_comment_route(
    post_id: UUID,
    payload: CreateCommentRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    post, _ = await add_comment(db, bus, user.id, post_id, text=payload.text)
    return post


@router.delete("/{post_id}/comments/{comment_id}", response_model=PostOut)
async def delete_comment_route(
    post_id: UUID,
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await delete_comment(db, user.id, post_id, comment_id)
