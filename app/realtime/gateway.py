"""Dispatch of client frames received on a realtime connection."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DomainError, Forbidden, InvalidInput, InvalidState
from app.realtime import events
from app.realtime.bus import EventBus, QueuedConnection, fan_out, make_frame
from app.schemas.realtime import Envelope, RoomsRelayFrame, SendMessageFrame, UserRelayFrame
from app.services.messages import send_message

logger = logging.getLogger(__name__)


class RealtimeGateway:
    """Handles frames for one authenticated connection.

    ``identity`` is the verified user id of the socket; a connection can only
    join its own room and only send messages as itself.
    """

    def __init__(
        self,
        bus: EventBus,
        connection: QueuedConnection,
        identity: uuid.UUID,
        session_factory: Callable[[], AsyncSession],
        *,
        legacy_relay: bool = True,
    ) -> None:
        self.bus = bus
        self.connection = connection
        self.identity = identity
        self.session_factory = session_factory
        self.legacy_relay = legacy_relay

    def _reply(self, event: str, payload: Any) -> None:
        self.connection.deliver(make_frame(event, payload))

    def error(self, exc: Exception, **extra: Any) -> None:
        self._reply(events.ERROR, {"code": getattr(exc, "code", "error"), "detail": str(exc), **extra})

    async def handle(self, raw: Any) -> None:
        try:
            envelope = Envelope.model_validate(raw)
        except ValidationError:
            self.error(InvalidInput("Frame must be an object with an event name"))
            return

        try:
            await self._dispatch(envelope)
        except DomainError as exc:
            extra = {"event": envelope.event}
            if envelope.event == events.SEND_MESSAGE and isinstance(envelope.data, dict):
                extra["client_id"] = envelope.data.get("client_id")
            self.error(exc, **extra)

    async def _dispatch(self, envelope: Envelope) -> None:
        if envelope.event == events.JOIN:
            await self._join(envelope.data)
        elif envelope.event == events.SEND_MESSAGE:
            await self._send_message(envelope.data)
        elif self.legacy_relay and envelope.event in events.ROOMS_RELAYS:
            await self._relay_to_rooms(envelope.event, envelope.data)
        elif self.legacy_relay and envelope.event in events.USER_RELAYS:
            await self._relay_to_user(envelope.event, envelope.data)
        else:
            raise InvalidInput(f"Unknown event: {envelope.event}")

    async def _join(self, data: Any) -> None:
        try:
            user_id = uuid.UUID(str(data))
        except ValueError:
            raise InvalidInput("join requires a user id") from None
        if user_id != self.identity:
            raise Forbidden("Cannot join another user's room")

        await self.bus.join(user_id, self.connection)
        self._reply(events.JOINED, {"userId": str(user_id)})

    async def _send_message(self, data: Any) -> None:
        try:
            frame = SendMessageFrame.model_validate(data or {})
        except ValidationError:
            raise InvalidInput("Malformed sendMessage payload") from None

        if frame.sender is None:
            raise InvalidInput("Sender required")
        if frame.sender != self.identity:
            raise Forbidden("Cannot send messages as another user")

        async with self.session_factory() as db:
            await send_message(
                db,
                self.bus,
                sender_id=frame.sender,
                recipient_id=frame.recipient,
                content=frame.content,
                client_id=frame.client_id,
            )

    def _require_joined(self) -> None:
        if self.bus.room_of(self.connection) is None:
            raise InvalidState("Join a room before relaying events")

    async def _relay_to_rooms(self, event: str, data: Any) -> None:
        self._require_joined()
        try:
            frame = RoomsRelayFrame.model_validate(data or {})
        except ValidationError:
            raise InvalidInput("userIds must be a list of user ids") from None

        if event == events.NEW_POST:
            # postCreated carries the bare post, same as the server-side emit.
            payload = (data or {}).get("post")
            if not isinstance(payload, dict):
                raise InvalidInput("post is required")
        else:
            payload = {**(data or {}), "from": str(self.identity)}
        await fan_out(self.bus, frame.user_ids, events.ROOMS_RELAYS[event], payload)

    async def _relay_to_user(self, event: str, data: Any) -> None:
        self._require_joined()
        try:
            frame = UserRelayFrame.model_validate(data or {})
        except ValidationError:
            raise InvalidInput("userId is required") from None

        payload = {**(data if isinstance(data, dict) else {}), "from": str(self.identity)}
        await fan_out(self.bus, [frame.user_id], events.USER_RELAYS[event], payload)
