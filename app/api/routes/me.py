from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_identity
from app.models.user import User
from app.schemas.users import ProfileUpdateRequest, UserProfile
from app.services.users import upsert_profile
from app.services.views import user_profile

router = APIRouter(tags=["me"])


@router.get("/me", response_model=UserProfile)
async def me(user: User = Depends(get_current_user)):
    return user_profile(user)


@router.put("/me", response_model=UserProfile)
async def update_me(
    payload: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_identity),
):
    user = await upsert_profile(
        db,
        user_id,
        username=payload.username,
        display_name=payload.display_name,
        avatar_url=payload.avatar_url,
        bio=payload.bio,
    )
    return user_profile(user)
