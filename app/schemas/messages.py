from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.users import UserSummary


class SendMessageRequest(BaseModel):
    # Presence is checked by the service so the error names the missing field.
    recipient: UUID | None = None
    content: str | None = None
    client_id: str | None = Field(default=None, max_length=64)


class MessageOut(BaseModel):
    id: UUID
    sender: UserSummary
    recipient: UserSummary
    content: str
    created_at: datetime
    read: bool
    client_id: str | None = None


class ConversationOut(BaseModel):
    user: UserSummary
    last_message: MessageOut
