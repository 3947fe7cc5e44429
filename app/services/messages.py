from __future__ import annotations

from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidInput
from app.db.transaction import run_in_transaction
from app.models.message import Message
from app.realtime import events
from app.realtime.bus import Notifier, fan_out
from app.schemas.messages import ConversationOut, MessageOut
from app.services.users import get_user, get_user_pair
from app.services.views import message_out, message_views, user_summary


async def send_message(
    db: AsyncSession,
    notifier: Notifier,
    *,
    sender_id: UUID,
    recipient_id: UUID | None,
    content: str | None,
    client_id: str | None = None,
) -> MessageOut:
    """Persist a message, then push it to both participants' rooms.

    ``client_id`` is the sender's correlation id for its optimistic copy; it is
    echoed back in the pushed payload and not stored.
    """
    has_content = content is not None and bool(content.strip())
    if recipient_id is None and not has_content:
        raise InvalidInput("Recipient and content required")
    if recipient_id is None:
        raise InvalidInput("Recipient required")
    if not has_content:
        raise InvalidInput("Content required")
    if recipient_id == sender_id:
        raise InvalidInput("You cannot message yourself")

    async def _op() -> MessageOut:
        sender, recipient = await get_user_pair(db, sender_id, recipient_id)
        message = Message(sender_id=sender.id, recipient_id=recipient.id, content=content)
        db.add(message)
        await db.flush()
        users = {sender.id: user_summary(sender), recipient.id: user_summary(recipient)}
        return message_out(message, users, client_id=client_id)

    out = await run_in_transaction(db, _op)

    await fan_out(notifier, [sender_id, recipient_id], events.MESSAGE, out.model_dump(mode="json"))
    return out


async def list_history(db: AsyncSession, current_user_id: UUID, other_user_id: UUID) -> list[MessageOut]:
    await get_user(db, other_user_id)

    m = Message
    q = (
        sa.select(m)
        .where(
            sa.or_(
                sa.and_(m.sender_id == current_user_id, m.recipient_id == other_user_id),
                sa.and_(m.sender_id == other_user_id, m.recipient_id == current_user_id),
            )
        )
        .order_by(m.created_at.asc(), m.id.asc())
    )
    messages = list((await db.execute(q)).scalars().all())
    return await message_views(db, messages)


async def list_conversations(db: AsyncSession, current_user_id: UUID) -> list[ConversationOut]:
    """One entry per counterpart holding the latest message, newest first."""
    m = Message
    q = (
        sa.select(m)
        .where(sa.or_(m.sender_id == current_user_id, m.recipient_id == current_user_id))
        .order_by(m.created_at.desc(), m.id.desc())
    )
    messages = (await db.execute(q)).scalars().all()

    latest: dict[UUID, Message] = {}
    for msg in messages:
        other = msg.recipient_id if msg.sender_id == current_user_id else msg.sender_id
        if other not in latest:
            latest[other] = msg

    views = await message_views(db, list(latest.values()))
    out: list[ConversationOut] = []
    for view in views:
        counterpart = view.recipient if view.sender.id == current_user_id else view.sender
        out.append(ConversationOut(user=counterpart, last_message=view))
    return out
