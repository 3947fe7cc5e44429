from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_event_bus
from app.models.user import User
from app.realtime.bus import EventBus
from app.schemas.messages import ConversationOut, MessageOut, SendMessageRequest
from app.services.messages import list_conversations, list_history, send_message

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=MessageOut, status_code=201)
async def send_message_route(
    payload: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    user: User = Depends(get_current_user),
):
    return await send_message(
        db,
        bus,
        sender_id=user.id,
        recipient_id=payload.recipient,
        content=payload.content,
        client_id=payload.client_id,
    )


@router.get("/conversations", response_model=list[ConversationOut])
async def get_conversations(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await list_conversations(db, user.id)


@router.get("/{user_id}", response_model=list[MessageOut])
async def get_history(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await list_history(db, user.id, user_id)
