"""Room-based fanout of realtime events to live connections."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, user_id: uuid.UUID, event: str, payload: Any) -> int: ...


class Connection(Protocol):
    def deliver(self, frame: dict[str, Any]) -> bool: ...


def make_frame(event: str, payload: Any) -> dict[str, Any]:
    return {"event": event, "data": payload}


class QueuedConnection:
    """A live client connection with its own FIFO outbox.

    ``deliver`` never blocks; ``run_writer`` drains the outbox through ``send``
    one frame at a time, so frames leave in the order they were delivered.
    """

    def __init__(self, send: Callable[[dict[str, Any]], Awaitable[None]], *, outbox_size: int = 256) -> None:
        self.id = uuid.uuid4().hex
        self._send = send
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=outbox_size)

    def deliver(self, frame: dict[str, Any]) -> bool:
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("outbox full, dropping %s for connection %s", frame.get("event"), self.id)
            return False
        return True

    async def run_writer(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self._send(frame)
            except Exception as exc:
                # Peer is gone; the reader side notices and deregisters us.
                logger.debug("send failed for connection %s: %s", self.id, exc)
                return


class EventBus:
    """Tracks which connections belong to which user room.

    Membership is ephemeral and connection-scoped. Delivery is at-most-once:
    an event for a room with no live connection is dropped.
    """

    def __init__(self) -> None:
        self._rooms: dict[uuid.UUID, set[Connection]] = defaultdict(set)
        self._membership: dict[Connection, uuid.UUID] = {}
        self._lock = asyncio.Lock()

    async def join(self, user_id: uuid.UUID, connection: Connection) -> None:
        async with self._lock:
            previous = self._membership.get(connection)
            if previous is not None and previous != user_id:
                self._discard(previous, connection)
            self._rooms[user_id].add(connection)
            self._membership[connection] = user_id
        logger.debug("connection joined room %s", user_id)

    async def leave(self, connection: Connection) -> None:
        async with self._lock:
            user_id = self._membership.pop(connection, None)
            if user_id is None:
                return
            self._discard(user_id, connection)
        logger.debug("connection left room %s", user_id)

    def _discard(self, user_id: uuid.UUID, connection: Connection) -> None:
        members = self._rooms.get(user_id)
        if not members:
            return
        members.discard(connection)
        if not members:
            self._rooms.pop(user_id, None)

    def room_of(self, connection: Connection) -> uuid.UUID | None:
        return self._membership.get(connection)

    def room_size(self, user_id: uuid.UUID) -> int:
        return len(self._rooms.get(user_id, ()))

    async def notify(self, user_id: uuid.UUID, event: str, payload: Any) -> int:
        async with self._lock:
            targets = list(self._rooms.get(user_id, ()))

        if not targets:
            logger.debug("no live connection for %s, dropping %s", user_id, event)
            return 0

        frame = make_frame(event, payload)
        delivered = 0
        for connection in targets:
            if connection.deliver(frame):
                delivered += 1
        return delivered


async def fan_out(notifier: Notifier, user_ids: Iterable[uuid.UUID], event: str, payload: Any) -> None:
    """Notify each distinct user once; delivery failures are logged, never raised."""
    seen: set[uuid.UUID] = set()
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        try:
            await notifier.notify(user_id, event, payload)
        except Exception:
            logger.exception("failed to deliver %s to %s", event, user_id)
