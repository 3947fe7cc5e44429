from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

FriendStatus = Literal["none", "friends", "sent", "received"]


class FriendStatusResponse(BaseModel):
    status: FriendStatus


class FriendActionResponse(BaseModel):
    ok: bool
    status: FriendStatus
