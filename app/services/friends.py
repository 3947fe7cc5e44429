from __future__ import annotations

from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidInput, InvalidState
from app.db.transaction import run_in_transaction
from app.models.relationship import STATUS_ACCEPTED, STATUS_PENDING, Relationship
from app.models.user import User
from app.realtime import events
from app.realtime.bus import Notifier, fan_out
from app.schemas.friends import FriendStatus
from app.services.users import get_user_pair
from app.services.views import user_summary

SUGGESTIONS_LIMIT = 20


def _pair(a: UUID, b: UUID) -> tuple[UUID, UUID]:
    return (a, b) if a < b else (b, a)


def _ensure_not_self(a: UUID, b: UUID, action: str) -> None:
    if a == b:
        raise InvalidInput(f"You cannot {action} yourself")


async def _get_edge(db: AsyncSession, a: UUID, b: UUID, *, for_update: bool = False) -> Relationship | None:
    low, high = _pair(a, b)
    q = sa.select(Relationship).where(
        Relationship.user_low_id == low,
        Relationship.user_high_id == high,
    )
    if for_update:
        # Serializes concurrent transitions on the same pair where supported.
        q = q.with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


def _status_from_edge(edge: Relationship | None, viewer_id: UUID) -> FriendStatus:
    if edge is None:
        return "none"
    if edge.status == STATUS_ACCEPTED:
        return "friends"
    if edge.requested_by_id == viewer_id:
        return "sent"
    return "received"


async def get_status(db: AsyncSession, current_user_id: UUID, other_user_id: UUID) -> FriendStatus:
    await get_user_pair(db, current_user_id, other_user_id)
    if current_user_id == other_user_id:
        return "none"
    return _status_from_edge(await _get_edge(db, current_user_id, other_user_id), current_user_id)


async def send_request(
    db: AsyncSession,
    notifier: Notifier,
    current_user_id: UUID,
    other_user_id: UUID,
) -> FriendStatus:
    _ensure_not_self(current_user_id, other_user_id, "send a friend request to")

    async def _op() -> User:
        sender, _ = await get_user_pair(db, current_user_id, other_user_id)

        existing = await _get_edge(db, current_user_id, other_user_id, for_update=True)
        if existing is not None:
            if existing.status == STATUS_ACCEPTED:
                raise Conflict("Already friends")
            raise Conflict("Friend request already pending")

        low, high = _pair(current_user_id, other_user_id)
        db.add(
            Relationship(
                user_low_id=low,
                user_high_id=high,
                status=STATUS_PENDING,
                requested_by_id=current_user_id,
            )
        )
        try:
            await db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent request on the same pair.
            raise Conflict("Friend request already pending") from exc
        return sender

    sender = await run_in_transaction(db, _op)

    await fan_out(
        notifier,
        [other_user_id],
        events.INCOMING_FRIEND_REQUEST,
        {"from": user_summary(sender).model_dump(mode="json")},
    )
    return "sent"


async def accept_request(
    db: AsyncSession,
    notifier: Notifier,
    current_user_id: UUID,
    other_user_id: UUID,
) -> FriendStatus:
    _ensure_not_self(current_user_id, other_user_id, "accept a friend request from")

    async def _op() -> User:
        accepter, _ = await get_user_pair(db, current_user_id, other_user_id)

        edge = await _get_edge(db, current_user_id, other_user_id, for_update=True)
        if edge is None or edge.status != STATUS_PENDING or edge.requested_by_id != other_user_id:
            raise InvalidState("No request to accept")

        edge.status = STATUS_ACCEPTED
        await db.flush()
        return accepter

    accepter = await run_in_transaction(db, _op)

    await fan_out(
        notifier,
        [other_user_id],
        events.FRIEND_REQUEST_ACCEPTED,
        {"by": user_summary(accepter).model_dump(mode="json")},
    )
    return "friends"


async def _delete_pending(db: AsyncSession, a: UUID, b: UUID, *, requested_by: UUID, error: str) -> None:
    async def _op() -> None:
        await get_user_pair(db, a, b)

        edge = await _get_edge(db, a, b, for_update=True)
        if edge is None or edge.status != STATUS_PENDING or edge.requested_by_id != requested_by:
            raise InvalidState(error)

        await db.delete(edge)
        await db.flush()

    await run_in_transaction(db, _op)


async def reject_request(db: AsyncSession, current_user_id: UUID, other_user_id: UUID) -> FriendStatus:
    _ensure_not_self(current_user_id, other_user_id, "reject a friend request from")
    await _delete_pending(
        db, current_user_id, other_user_id, requested_by=other_user_id, error="No request to reject"
    )
    return "none"


async def cancel_request(db: AsyncSession, current_user_id: UUID, other_user_id: UUID) -> FriendStatus:
    _ensure_not_self(current_user_id, other_user_id, "cancel a friend request to")
    await _delete_pending(
        db, current_user_id, other_user_id, requested_by=current_user_id, error="No request to cancel"
    )
    return "none"


async def unfriend(db: AsyncSession, current_user_id: UUID, other_user_id: UUID) -> FriendStatus:
    """Remove a friendship. Unfriending someone who is not a friend is a no-op."""
    _ensure_not_self(current_user_id, other_user_id, "unfriend")

    async def _op() -> FriendStatus:
        await get_user_pair(db, current_user_id, other_user_id)

        edge = await _get_edge(db, current_user_id, other_user_id, for_update=True)
        if edge is not None and edge.status == STATUS_ACCEPTED:
            await db.delete(edge)
            await db.flush()
            return "none"
        return _status_from_edge(edge, current_user_id)

    return await run_in_transaction(db, _op)


async def friend_ids(db: AsyncSession, current_user_id: UUID) -> list[UUID]:
    r = Relationship
    q = sa.select(r.user_low_id, r.user_high_id).where(
        r.status == STATUS_ACCEPTED,
        sa.or_(r.user_low_id == current_user_id, r.user_high_id == current_user_id),
    )
    rows = (await db.execute(q)).all()
    return [row.user_high_id if row.user_low_id == current_user_id else row.user_low_id for row in rows]


async def _list_counterparts(db: AsyncSession, current_user_id: UUID, *conditions) -> list[User]:
    # relationship row can contain you in either low/high
    r = Relationship
    q = (
        sa.select(User)
        .join(
            r,
            ((r.user_low_id == current_user_id) & (User.id == r.user_high_id))
            | ((r.user_high_id == current_user_id) & (User.id == r.user_low_id)),
        )
        .where(*conditions)
        .order_by(User.username.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_friends(db: AsyncSession, current_user_id: UUID) -> list[User]:
    return await _list_counterparts(db, current_user_id, Relationship.status == STATUS_ACCEPTED)


async def list_received_requests(db: AsyncSession, current_user_id: UUID) -> list[User]:
    return await _list_counterparts(
        db,
        current_user_id,
        Relationship.status == STATUS_PENDING,
        Relationship.requested_by_id != current_user_id,
    )


async def list_sent_requests(db: AsyncSession, current_user_id: UUID) -> list[User]:
    return await _list_counterparts(
        db,
        current_user_id,
        Relationship.status == STATUS_PENDING,
        Relationship.requested_by_id == current_user_id,
    )


async def suggestions(db: AsyncSession, current_user_id: UUID, limit: int = SUGGESTIONS_LIMIT) -> list[User]:
    """Users with no relationship of any kind to the current user.

    This is a plain candidate pool: exclusion only, no ranking.
    """
    r = Relationship
    related = sa.union(
        sa.select(r.user_high_id.label("uid")).where(r.user_low_id == current_user_id),
        sa.select(r.user_low_id.label("uid")).where(r.user_high_id == current_user_id),
    ).subquery()

    q = (
        sa.select(User)
        .where(User.id != current_user_id, User.id.not_in(sa.select(related.c.uid)))
        .order_by(User.username.asc())
        .limit(limit)
    )
    return list((await db.execute(q)).scalars().all())
