from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class UserSummary(BaseModel):
    id: UUID
    username: str
    display_name: str
    avatar_url: str | None = None


class UserProfile(UserSummary):
    bio: str | None = None
    created_at: datetime


class ProfileUpdateRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    display_name: str = Field(min_length=1, max_length=120)
    avatar_url: str | None = Field(default=None, max_length=500)
    bio: str | None = Field(default=None, max_length=500)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        cleaned = v.strip().lower()
        if not cleaned:
            raise ValueError("username must not be blank")
        return cleaned
