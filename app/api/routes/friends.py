from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_event_bus
from app.models.user import User
from app.realtime.bus import EventBus
from app.schemas.friends import FriendActionResponse, FriendStatusResponse
from app.schemas.users import UserSummary
from app.services.friends import (
    accept_request,
    cancel_request,
    get_status,
    list_friends,
    list_received_requests,
    list_sent_requests,
    reject_request,
    send_request,
    suggestions,
    unfriend,
)
from app.services.views import user_summary

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("", response_model=list[UserSummary])
async def get_friends(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [user_summary(u) for u in await list_friends(db, user.id)]


@router.get("/suggestions", response_model=list[UserSummary])
async def get_suggestions(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [user_summary(u) for u in await suggestions(db, user.id)]


@router.get("/requests/received", response_model=list[UserSummary])
async def get_received_requests(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [user_summary(u) for u in await list_received_requests(db, user.id)]


@router.get("/requests/sent", response_model=list[UserSummary])
async def get_sent_requests(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [user_summary(u) for u in await list_sent_requests(db, user.id)]


@router.get("/{user_id}/status", response_model=FriendStatusResponse)
async def get_friend_status(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return FriendStatusResponse(status=await get_status(db, user.id, user_id))


@router.post("/{user_id}/request", response_model=FriendActionResponse)
async def send_request_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    status = await send_request(db, bus, user.id, user_id)
    return FriendActionResponse(ok=True, status=status)


@router.post("/{user_id}/accept", response_model=FriendActionResponse)
async def accept_request_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    status = await accept_request(db, bus, user.id, user_id)
    return FriendActionResponse(ok=True, status=status)


@router.post("/{user_id}/reject", response_model=FriendActionResponse)
async def reject_request_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    status = await reject_request(db, user.id, user_id)
    return FriendActionResponse(ok=True, status=status)


@router.delete("/{user_id}/cancel", response_model=FriendActionResponse)
async def cancel_request_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    status = await cancel_request(db, user.id, user_id)
    return FriendActionResponse(ok=True, status=status)


@router.delete("/{user_id}/unfriend", response_model=FriendActionResponse)
async def unfriend_route(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    status = await unfriend(db, user.id, user_id)
    return FriendActionResponse(ok=True, status=status)
