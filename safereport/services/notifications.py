"""Notification creation, listing and per-participant fan-out."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from safereport.errors import NotFound, ValidationError
from safereport.models import ChatRoom, Message, Notification, NotificationType, Role, User
from safereport.store.base import Store

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100

_SENDER_LABELS = {Role.ADMIN: "Admin", Role.MODERATOR: "Moderator"}


def chat_link(room_id: str) -> str:
    return f"/chat?roomId={room_id}"


def chat_notification_text(message: Message) -> str:
    label = _SENDER_LABELS.get(message.sender_role, "User")
    return f"New message from {label}: {message.body[:PREVIEW_CHARS]}"


class NotificationService:
    def __init__(self, store: Store):
        self.store = store

    async def create(
        self,
        recipient_id: str,
        type: NotificationType | str,
        message: str,
        link: Optional[str] = None,
    ) -> Notification:
        if not message or not message.strip():
            raise ValidationError("Notification message is required")
        try:
            type = NotificationType(type)
        except ValueError:
            raise ValidationError(f"Unknown notification type: {type}") from None
        return await self.store.create_notification(recipient_id, type, message.strip(), link)

    async def list_for(self, user: User, *, skip: int = 0, limit: int = 50) -> list[Notification]:
        return await self.store.list_notifications(user.id, skip=skip, limit=limit)

    async def mark_read(self, notification_id: str, user: User) -> Notification:
        notification = await self.store.mark_notification_read(notification_id, user.id)
        if notification is None:
            raise NotFound("Notification not found")
        return notification

    async def fan_out(
        self,
        recipient_ids: Iterable[str],
        type: NotificationType,
        message: str,
        link: Optional[str] = None,
    ) -> list[Notification]:
        """Create one notification per recipient.

        Each write stands alone: a failed recipient is logged and skipped.
        """
        created: list[Notification] = []
        for recipient_id in recipient_ids:
            try:
                created.append(await self.store.create_notification(recipient_id, type, message, link))
            except Exception as exc:
                logger.warning("Failed to notify %s: %s", recipient_id, exc)
        return created

    async def notify_chat_message(self, room: ChatRoom, message: Message) -> list[Notification]:
        recipients = sorted(p for p in room.participants if p != message.sender_id)
        return await self.fan_out(
            recipients, NotificationType.CHAT, chat_notification_text(message), chat_link(room.id)
        )
