"""Report chat rooms over HTTP. Live delivery happens on the WebSocket gateway."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from safereport.api.deps import get_current_user, get_services
from safereport.models import ChatRoom, User
from safereport.services import Services

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


class RoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(..., alias="reportId", min_length=1)


class MessageRequest(BaseModel):
    body: str


def room_out(room: ChatRoom) -> dict:
    return {
        "id": room.id,
        "report_id": room.report_id,
        "participants": sorted(room.participants),
        "created_at": room.created_at.isoformat(),
    }


@router.post("/room")
async def open_room(
    body: RoomRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Get the report's room, creating it or joining it as needed."""
    room = await services.rooms.get_or_create(body.report_id, user)
    return {"room": room_out(room)}


@router.get("/rooms")
async def my_rooms(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    rooms = await services.rooms.list_rooms_for(user)
    return {"rooms": [room_out(r) for r in rooms]}


@router.get("/room/{room_id}/messages")
async def list_messages(
    room_id: str,
    after: Optional[str] = Query(None, description="Only messages after this message id"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    messages = await services.messaging.get_messages(room_id, user, after=after, limit=limit)
    return {"messages": [m.model_dump(mode="json") for m in messages]}


@router.post("/room/{room_id}/message", status_code=201)
async def post_message(
    room_id: str,
    body: MessageRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    message = await services.messaging.post_message(room_id, user, body.body)
    return {"message": message.model_dump(mode="json")}
