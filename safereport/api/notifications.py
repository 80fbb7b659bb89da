"""The signed-in user's notification feed."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from safereport.api.deps import get_current_user, get_services
from safereport.models import User
from safereport.services import Services

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationRequest(BaseModel):
    type: str = "other"
    message: str = Field(..., max_length=500)
    link: Optional[str] = Field(None, max_length=500)


@router.get("")
async def list_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    notifications = await services.notifications.list_for(user, skip=skip, limit=limit)
    return {"notifications": [n.model_dump(mode="json") for n in notifications]}


@router.post("", status_code=201)
async def create_notification(
    body: NotificationRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create a notification for yourself (reminders and client-side events)."""
    notification = await services.notifications.create(user.id, body.type, body.message, body.link)
    return {"notification": notification.model_dump(mode="json")}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    notification = await services.notifications.mark_read(notification_id, user)
    return {"notification": notification.model_dump(mode="json")}
