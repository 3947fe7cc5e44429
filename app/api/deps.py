from __future__ import annotations

from collections.abc import AsyncGenerator
import uuid

from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decode_access_token
from app.db.session import get_db_session
from app.models.user import User
from app.realtime.bus import EventBus

COOKIE_NAME = "access_token"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


def extract_token(access_token: str | None, authorization: str | None) -> str | None:
    if access_token:
        return access_token
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return None


async def get_identity(
    access_token: str | None = Cookie(default=None, alias=COOKIE_NAME),
    authorization: str | None = Header(default=None),
) -> uuid.UUID:
    token = extract_token(access_token, authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user_id, error = decode_access_token(token)
    if user_id is None:
        detail = "Token expired" if error == "expired" else "Invalid token"
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
    return user_id


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_identity),
) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        # Valid identity with no profile yet (PUT /me creates one).
        raise HTTPException(status_code=401, detail="User not found")

    return user


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus
