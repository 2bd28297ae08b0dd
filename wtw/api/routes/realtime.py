"""WebSocket relay from the EventBus to connected clients.

Client sends:
    {"type": "ping"}

Server sends:
    {"type": "subscribed", "sessionId": "..."}
    {"type": "event", "event": "<name>", "data": {...}}
    {"type": "pong"}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from wtw.api.deps import get_db, get_event_bus
from wtw.core.errors import NotFoundError
from wtw.services import store
from wtw.services.events import EventBus, Subscription

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])

SESSION_NOT_FOUND_CLOSE_CODE = 4404


async def _forward_events(websocket: WebSocket, sub: Subscription) -> None:
    async for event in sub:
        await websocket.send_json(event.to_message())


async def _handle_client_messages(websocket: WebSocket) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "message": "invalid JSON"})
            continue
        if isinstance(message, dict) and message.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/ws/sessions/{session_id}")
async def session_events_ws(
    websocket: WebSocket,
    session_id: UUID,
    participant_id: UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        await store.get_session(db, session_id)
    except NotFoundError:
        await websocket.close(code=SESSION_NOT_FOUND_CLOSE_CODE)
        return
    finally:
        # the relay below never touches the database
        await db.close()

    await websocket.accept()
    sub = bus.subscribe(session_id, participant_id)
    logger.info("WebSocket subscribed to session %s (participant %s)", session_id, participant_id)

    try:
        await websocket.send_json({"type": "subscribed", "sessionId": str(session_id)})

        forward = asyncio.create_task(_forward_events(websocket, sub))
        receive = asyncio.create_task(_handle_client_messages(websocket))
        done, pending = await asyncio.wait({forward, receive}, return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await task
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("WebSocket for session %s closed with error: %r", session_id, exc)
    except WebSocketDisconnect:
        pass
    finally:
        sub.close()
        logger.info("WebSocket unsubscribed from session %s", session_id)
