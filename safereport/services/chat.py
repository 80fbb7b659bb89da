"""Chat rooms bound to reports, and the messages posted in them."""
from __future__ import annotations

import logging
from typing import Optional

from safereport.errors import AccessDenied, ChatClosed, NotFound, ValidationError
from safereport.models import CHAT_CLOSED_STATUSES, ChatRoom, Message, User
from safereport.policy import Capability, is_privileged, require
from safereport.store.base import Store

logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 1000


class RoomRegistry:
    """One room per report; participants only ever accrue."""

    def __init__(self, store: Store):
        self.store = store

    async def get_or_create(self, report_id: str, requester: User) -> ChatRoom:
        require(requester, Capability.CHAT)
        report = await self.store.get_report(report_id)
        if report is None:
            raise NotFound("Report not found")
        if not is_privileged(requester) and report.reporter_id != requester.id:
            raise AccessDenied("You can only open the chat for your own report")

        room, created = await self.store.get_or_create_room(report_id, requester.id)
        if created:
            logger.info("Chat room %s opened for report %s by %s", room.id, report_id, requester.id)
        elif requester.id not in room.participants:
            room = await self.store.add_participant(room.id, requester.id) or room
            logger.info("%s joined chat room %s", requester.id, room.id)
        return room

    async def list_rooms_for(self, user: User) -> list[ChatRoom]:
        return await self.store.list_rooms_for(user.id)


class MessagingService:
    """Append-only message log with notification fan-out and live publish."""

    def __init__(self, store: Store, notifications=None, hub=None):
        self.store = store
        self.notifications = notifications
        self.hub = hub

    async def _room_for(self, room_id: str, user: User) -> ChatRoom:
        room = await self.store.get_room(room_id)
        if room is None:
            raise NotFound("Chat room not found")
        if user.id not in room.participants:
            raise AccessDenied("You are not a participant in this chat")
        return room

    async def post_message(self, room_id: str, sender: User, body: str) -> Message:
        require(sender, Capability.CHAT)
        body = body.strip() if isinstance(body, str) else ""
        if not 1 <= len(body) <= MAX_MESSAGE_CHARS:
            raise ValidationError(f"Message must be between 1 and {MAX_MESSAGE_CHARS} characters")
        room = await self._room_for(room_id, sender)
        report = await self.store.get_report(room.report_id)
        if report is not None and report.status in CHAT_CLOSED_STATUSES:
            raise ChatClosed()

        message = await self.store.create_message(
            room.id, sender.id, sender.role, body, is_anonymous=sender.is_anonymous
        )
        if self.notifications is not None:
            await self.notifications.notify_chat_message(room, message)
        # Publish only what was stored.
        if self.hub is not None:
            await self.hub.publish_message(message)
            if not is_privileged(sender):
                await self.hub.publish_user_message(message)
        return message

    async def get_messages(
        self,
        room_id: str,
        requester: User,
        *,
        after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Message]:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be positive")
        room = await self._room_for(room_id, requester)
        return await self.store.list_messages(room.id, after=after, limit=limit)

    async def can_join(self, room_id: str, user: User) -> ChatRoom:
        """Room lookup for live subscriptions; same participant rule as reads."""
        return await self._room_for(room_id, user)
