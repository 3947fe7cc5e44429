from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.api.deps import COOKIE_NAME, extract_token
from app.core.config import settings
from app.core.errors import InvalidInput
from app.core.security import decode_access_token
from app.db.session import AsyncSessionLocal
from app.realtime.bus import QueuedConnection
from app.realtime.gateway import RealtimeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# Application-defined close code, mirrors HTTP 401.
WS_CLOSE_UNAUTHENTICATED = 4401


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = Query(default=None)):
    raw_token = extract_token(
        token or websocket.cookies.get(COOKIE_NAME),
        websocket.headers.get("authorization"),
    )
    identity = decode_access_token(raw_token)[0] if raw_token else None
    if identity is None:
        await websocket.close(code=WS_CLOSE_UNAUTHENTICATED)
        return

    await websocket.accept()

    bus = websocket.app.state.event_bus
    connection = QueuedConnection(websocket.send_json, outbox_size=settings.realtime_outbox_size)
    gateway = RealtimeGateway(
        bus,
        connection,
        identity,
        AsyncSessionLocal,
        legacy_relay=settings.realtime_legacy_relay,
    )
    writer = asyncio.create_task(connection.run_writer())

    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except json.JSONDecodeError:
                gateway.error(InvalidInput("Frame is not valid JSON"))
                continue
            await gateway.handle(frame)
    except WebSocketDisconnect:
        logger.debug("realtime connection %s closed", connection.id)
    finally:
        await bus.leave(connection)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
