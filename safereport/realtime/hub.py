"""In-process fan-out of real-time events to subscribed WebSocket connections.

Channels are plain strings: ``room:<id>`` for chat rooms, ``user:<id>`` for a
user's personal feed and ``admin`` for the privileged broadcast channel.
A connection is anything with an async ``send_json``.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Optional

from safereport.models import Message, Report

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def message_payload(message: Message) -> dict:
    return {
        "id": message.id,
        "roomId": message.room_id,
        "senderId": message.sender_id,
        "senderRole": message.sender_role.value,
        "body": message.body,
        "timestamp": message.timestamp.isoformat(),
        "isAnonymous": message.is_anonymous,
    }


class ConnectionHub:
    """Tracks which connection listens on which channel."""

    def __init__(self) -> None:
        self._channels: dict[str, set[Any]] = defaultdict(set)
        self._memberships: dict[Any, set[str]] = defaultdict(set)

    def subscribe(self, connection, channel: str) -> None:
        self._channels[channel].add(connection)
        self._memberships[connection].add(channel)

    def unsubscribe(self, connection, channel: str) -> None:
        members = self._channels.get(channel)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._channels[channel]
        channels = self._memberships.get(connection)
        if channels is not None:
            channels.discard(channel)

    def disconnect(self, connection) -> None:
        """Drop every subscription held by ``connection``."""
        for channel in list(self._memberships.pop(connection, ())):
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._channels[channel]

    def subscribers(self, channel: str) -> set:
        return set(self._channels.get(channel, ()))

    def channels_of(self, connection) -> set[str]:
        return set(self._memberships.get(connection, ()))

    @property
    def connection_count(self) -> int:
        return len(self._memberships)

    async def broadcast(self, channel: str, event: str, data: dict, *, exclude=None) -> int:
        """Send ``{"event", "data"}`` to every subscriber. Returns deliveries.

        A connection whose send fails is dropped; the rest still receive.
        """
        frame = {"event": event, "data": data}
        delivered = 0
        for connection in self.subscribers(channel):
            if connection is exclude:
                continue
            try:
                await connection.send_json(frame)
            except Exception as exc:
                logger.warning("Dropping connection on %s after failed send: %s", channel, exc)
                self.disconnect(connection)
                continue
            delivered += 1
        return delivered

    # ---- Domain events ----

    async def publish_message(self, message: Message) -> int:
        return await self.broadcast(room_channel(message.room_id), "new-message", message_payload(message))

    async def publish_user_message(self, message: Message) -> int:
        preview = message.body[:100] + "..."
        return await self.broadcast(ADMIN_CHANNEL, "user-message", {
            "roomId": message.room_id,
            "message": preview,
            "timestamp": message.timestamp.isoformat(),
        })

    async def publish_report_update(self, report: Report) -> int:
        return await self.broadcast(user_channel(report.reporter_id), "report-updated", {
            "reportId": report.id,
            "status": report.status.value,
            "timestamp": report.updated_at.isoformat(),
        })

    async def publish_typing(self, room_id: str, user_id: str, is_typing: bool, *, exclude=None) -> int:
        return await self.broadcast(
            room_channel(room_id),
            "user-typing",
            {"userId": user_id, "isTyping": is_typing},
            exclude=exclude,
        )

    async def send(self, connection, event: str, data: Optional[dict] = None) -> None:
        await connection.send_json({"event": event, "data": data or {}})
