"""WebSocket gateway: one authenticated connection per client at ``/ws``.

Frames in both directions are JSON objects ``{"event": ..., "data": ...}``.
The identity is resolved once at the handshake and kept for the life of the
connection. Chat writes go through the same messaging service as HTTP, so a
``new-message`` is only ever broadcast after the message was stored.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from safereport.auth import authenticate
from safereport.errors import SafeReportError, Unexpected, ValidationError
from safereport.models import User
from safereport.policy import Capability, can
from safereport.realtime.hub import ADMIN_CHANNEL, ConnectionHub, room_channel, user_channel
from safereport.services import Services, build_services

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_from(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def _room_id(data: Any) -> str:
    room_id = data.get("roomId") if isinstance(data, dict) else data
    if room_id is None or isinstance(room_id, (dict, list)) or str(room_id) == "":
        raise ValidationError("roomId is required")
    return str(room_id)


# ---- Event handlers ----

async def _join_room(ws: WebSocket, user: User, data, services: Services, hub: ConnectionHub) -> None:
    room = await services.messaging.can_join(_room_id(data), user)
    hub.subscribe(ws, room_channel(room.id))
    logger.debug("%s joined live room %s", user.id, room.id)
    await hub.send(ws, "joined-room", {"roomId": room.id})


async def _leave_room(ws: WebSocket, user: User, data, services: Services, hub: ConnectionHub) -> None:
    room_id = _room_id(data)
    hub.unsubscribe(ws, room_channel(room_id))
    await hub.send(ws, "left-room", {"roomId": room_id})


async def _send_message(ws: WebSocket, user: User, data, services: Services, hub: ConnectionHub) -> None:
    if not isinstance(data, dict):
        raise ValidationError("send-message expects {roomId, body}")
    body = data.get("body", data.get("message"))
    await services.messaging.post_message(_room_id(data), user, body)


async def _typing(ws: WebSocket, user: User, data, hub: ConnectionHub, is_typing: bool) -> None:
    room_id = _room_id(data)
    if room_channel(room_id) not in hub.channels_of(ws):
        raise ValidationError("Join the room before sending typing events")
    await hub.publish_typing(room_id, user.id, is_typing, exclude=ws)


async def _typing_start(ws, user, data, services, hub) -> None:
    await _typing(ws, user, data, hub, True)


async def _typing_stop(ws, user, data, services, hub) -> None:
    await _typing(ws, user, data, hub, False)


_HANDLERS = {
    "join-room": _join_room,
    "leave-room": _leave_room,
    "send-message": _send_message,
    "typing-start": _typing_start,
    "typing-stop": _typing_stop,
}


async def _dispatch(websocket: WebSocket, user: User, raw: str) -> None:
    state = websocket.app.state
    hub: ConnectionHub = state.hub
    try:
        frame = json.loads(raw)
    except ValueError:
        await hub.send(websocket, "error", {"error": "validation_error", "message": "Frames must be JSON"})
        return
    event = frame.get("event") if isinstance(frame, dict) else None
    handler = _HANDLERS.get(event)
    if handler is None:
        await hub.send(websocket, "error", {
            "event": event, "error": "validation_error", "message": f"Unknown event: {event}",
        })
        return

    try:
        store = await state.store_selector.select()
        services = build_services(store, hub, state.classifier)
        await handler(websocket, user, frame.get("data"), services, hub)
    except SafeReportError as exc:
        await hub.send(websocket, "error", {"event": event, "error": exc.code, "message": exc.message})
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("Unhandled error on websocket event %s", event)
        exc = Unexpected()
        await hub.send(websocket, "error", {"event": event, "error": exc.code, "message": exc.message})


@router.websocket("/ws")
async def realtime_gateway(websocket: WebSocket):
    state = websocket.app.state
    try:
        store = await state.store_selector.select()
        user = await authenticate(store, _token_from(websocket))
    except SafeReportError as exc:
        logger.info("WebSocket handshake rejected: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub: ConnectionHub = state.hub
    await websocket.accept()
    hub.subscribe(websocket, user_channel(user.id))
    if can(user.role, Capability.ADMIN_CHANNEL):
        hub.subscribe(websocket, ADMIN_CHANNEL)
    logger.info("WebSocket connected: %s (%s)", user.id, user.role.value)
    await hub.send(websocket, "connected", {"userId": user.id, "role": user.role.value})

    try:
        while True:
            raw = await websocket.receive_text()
            await _dispatch(websocket, user, raw)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
        logger.info("WebSocket disconnected: %s", user.id)
