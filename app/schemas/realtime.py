from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    event: str = Field(min_length=1, max_length=64)
    data: Any = None


class SendMessageFrame(BaseModel):
    sender: UUID | None = None
    recipient: UUID | None = None
    content: str | None = None
    client_id: str | None = Field(default=None, max_length=64)


class RoomsRelayFrame(BaseModel):
    model_config = {"extra": "allow", "populate_by_name": True}

    user_ids: list[UUID] = Field(default_factory=list, alias="userIds")


class UserRelayFrame(BaseModel):
    model_config = {"extra": "allow", "populate_by_name": True}

    user_id: UUID = Field(alias="userId")
