from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.users import UserSummary


class CreatePostRequest(BaseModel):
    content: str | None = None
    image_url: str | None = Field(default=None, max_length=500)


class UpdatePostRequest(BaseModel):
    content: str | None = None


class CreateCommentRequest(BaseModel):
    text: str | None = None


class CommentOut(BaseModel):
    id: UUID
    author: UserSummary
    text: str
    created_at: datetime


class PostOut(BaseModel):
    id: UUID
    author: UserSummary
    content: str
    image_url: str | None = None
    likes: list[UUID]
    comments: list[CommentOut]
    created_at: datetime


class LikeToggleResponse(BaseModel):
    post: PostOut
    liked: bool


class DeletePostResponse(BaseModel):
    ok: bool
