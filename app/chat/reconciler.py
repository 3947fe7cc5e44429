"""Client-side chat view with optimistic sends.

A client shows its own message immediately as a *provisional* entry, then
swaps it for the durable copy when the server pushes the persisted message
back. Provisional entries carry a client-generated correlation id which the
server echoes as ``client_id``; when an echo comes back without one (older
servers, or REST sends), the entry is matched on direction and content
instead. Two identical texts sent in the same tick without correlation ids
can't be told apart by that fallback.
"""

from __future__ import annotations

import itertools
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

TEMP_PREFIX = "temp-"

_counter = itertools.count()


def new_client_id() -> str:
    return f"{TEMP_PREFIX}{int(time.time() * 1000)}-{next(_counter)}-{uuid.uuid4().hex[:8]}"


@dataclass
class ChatEntry:
    id: str
    sender_id: str
    recipient_id: str
    content: str
    created_at: datetime
    confirmed: bool = True
    failed: bool = False
    client_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def provisional(self) -> bool:
        return not self.confirmed


def _party_id(value: Any) -> str:
    # Pushed messages expand sender/recipient into display objects.
    if isinstance(value, dict):
        value = value.get("id")
    return str(value)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


def entry_from_payload(payload: dict[str, Any]) -> ChatEntry:
    return ChatEntry(
        id=str(payload["id"]),
        sender_id=_party_id(payload["sender"]),
        recipient_id=_party_id(payload["recipient"]),
        content=payload["content"],
        created_at=_parse_time(payload.get("created_at")),
        client_id=payload.get("client_id"),
        raw=payload,
    )


class ChatReconciler:
    """Local message list for the conversation between ``me`` and ``peer``."""

    def __init__(self, me: uuid.UUID | str, peer: uuid.UUID | str) -> None:
        self.me = str(me)
        self.peer = str(peer)
        self.entries: list[ChatEntry] = []

    def _in_conversation(self, entry: ChatEntry) -> bool:
        return {entry.sender_id, entry.recipient_id} == {self.me, self.peer}

    def send(self, content: str) -> tuple[ChatEntry, dict[str, Any]]:
        """Insert a provisional entry; returns it and the ``sendMessage`` payload to emit."""
        client_id = new_client_id()
        entry = ChatEntry(
            id=client_id,
            sender_id=self.me,
            recipient_id=self.peer,
            content=content,
            created_at=datetime.now(timezone.utc),
            confirmed=False,
            client_id=client_id,
        )
        self.entries.append(entry)
        frame = {"sender": self.me, "recipient": self.peer, "content": content, "client_id": client_id}
        return entry, frame

    def fail(self, client_id: str) -> bool:
        for entry in self.entries:
            if entry.provisional and entry.client_id == client_id:
                entry.failed = True
                return True
        return False

    def _find_provisional(self, incoming: ChatEntry) -> int | None:
        if incoming.sender_id != self.me:
            return None

        if incoming.client_id:
            for i, entry in enumerate(self.entries):
                if entry.provisional and entry.client_id == incoming.client_id:
                    return i

        for i, entry in enumerate(self.entries):
            if (
                entry.provisional
                and (incoming.client_id is None or entry.client_id is None)
                and entry.sender_id == incoming.sender_id
                and entry.recipient_id == incoming.recipient_id
                and entry.content == incoming.content
            ):
                return i
        return None

    def receive(self, payload: dict[str, Any]) -> bool:
        """Merge a pushed ``message`` event. Returns True if the view changed."""
        incoming = entry_from_payload(payload)
        if not self._in_conversation(incoming):
            return False

        idx = self._find_provisional(incoming)
        already_present = any(e.confirmed and e.id == incoming.id for e in self.entries)
        if idx is not None:
            if already_present:
                # History fetched in between already holds the durable copy.
                del self.entries[idx]
            else:
                self.entries[idx] = incoming
            return True

        if already_present:
            return False

        self.entries.append(incoming)
        return True

    def load_history(self, payloads: list[dict[str, Any]]) -> None:
        """Replace confirmed entries with fetched history, keeping unsent provisional ones.

        A provisional entry whose echo was missed (e.g. while reconnecting) is
        settled by the oldest newly fetched message of mine with the same
        recipient and content. Messages already shown before the fetch can't
        settle anything.
        """
        history = [entry_from_payload(p) for p in payloads]
        history = [e for e in history if self._in_conversation(e)]

        known = {e.id for e in self.entries if e.confirmed}
        unclaimed = [e for e in history if e.sender_id == self.me and e.id not in known]

        pending: list[ChatEntry] = []
        for entry in self.entries:
            if not entry.provisional:
                continue
            match = next(
                (
                    i
                    for i, h in enumerate(unclaimed)
                    if h.recipient_id == entry.recipient_id and h.content == entry.content
                ),
                None,
            )
            if match is None:
                pending.append(entry)
            else:
                del unclaimed[match]

        self.entries = history + pending

    def contents(self) -> list[str]:
        return [e.content for e in self.entries]
