"""Ephemeral in-process store, the fallback when the database is unreachable.

Data lives in plain dicts and is lost on restart. Ids come from monotonic
per-collection counters. None of the methods await, so each one runs to
completion on the event loop without interleaving; that is what makes
``assign_report`` an atomic set-if-absent here.
"""
from __future__ import annotations

import itertools
from collections import Counter, defaultdict
from datetime import datetime
from typing import Optional

from safereport.models import (
    CHAT_CLOSED_STATUSES,
    USER_RETENTION,
    REPORT_RETENTION,
    AdminRequest,
    AdminRequestStatus,
    AdminRequestSubmission,
    Category,
    ChatRoom,
    Message,
    Notification,
    NotificationType,
    PrivateNote,
    PublicUpdate,
    Report,
    ReportBreakdown,
    ReportFacts,
    ReportQuery,
    ReportStatus,
    ReportSubmission,
    Role,
    StoreStats,
    User,
    UserCounts,
    utcnow,
)
from safereport.store.base import Store, ranked_counts
from safereport.store.seed import privileged_users

_REPORT_FIELDS = frozenset({
    "title", "description", "category", "location", "incident_time",
    "status", "priority", "sentiment", "ai_category",
})


def _copy(model):
    return model.model_copy(deep=True)


def _matches(report: Report, query: ReportQuery) -> bool:
    if query.reporter_id is not None and report.reporter_id != query.reporter_id:
        return False
    if query.category is not None and report.category != query.category:
        return False
    if query.status is not None and report.status != query.status:
        return False
    if query.priority is not None and report.priority != query.priority:
        return False
    if query.created_after is not None and report.created_at < query.created_after:
        return False
    if query.created_before is not None and report.created_at > query.created_before:
        return False
    return True


class MemoryStore(Store):
    """Dict-backed store scoped to one process."""

    name = "memory"

    def __init__(self, seed: bool = True):
        self._users: dict[str, User] = {}
        self._reports: dict[str, Report] = {}
        self._rooms: dict[str, ChatRoom] = {}
        self._room_by_report: dict[str, str] = {}
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._notifications: dict[str, Notification] = {}
        self._admin_requests: dict[str, AdminRequest] = {}
        self._counters = {
            name: itertools.count(1)
            for name in ("users", "reports", "rooms", "messages", "notifications", "admin_requests")
        }
        if seed:
            for user in privileged_users():
                self._users[user.id] = user

    def _next_id(self, collection: str) -> str:
        return str(next(self._counters[collection]))

    async def ping(self) -> None:
        return None

    # ---- Users ----

    async def create_user(self, anonymous_id, *, campus_id=None, email=None, is_anonymous=True) -> User:
        now = utcnow()
        user = User(
            id=self._next_id("users"),
            anonymous_id=anonymous_id,
            email=email,
            campus_id=campus_id,
            is_anonymous=is_anonymous,
            role=Role.USER,
            created_at=now,
            data_retention_at=now + USER_RETENTION,
        )
        self._users[user.id] = user
        return _copy(user)

    async def ensure_user(self, user: User) -> User:
        stored = self._users.setdefault(user.id, _copy(user))
        return _copy(stored)

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return _copy(user) if user else None

    async def set_user_role(self, user_id: str, role: Role) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.role = role
        return _copy(user)

    # ---- Reports ----

    async def create_report(self, reporter_id, submission: ReportSubmission, *, is_anonymous=True) -> Report:
        now = utcnow()
        report = Report(
            id=self._next_id("reports"),
            reporter_id=reporter_id,
            title=submission.title,
            description=submission.description,
            category=submission.category,
            location=_copy(submission.location),
            incident_time=submission.incident_time or now,
            attachments=[_copy(a) for a in submission.attachments],
            is_anonymous=is_anonymous,
            created_at=now,
            updated_at=now,
            data_retention_at=now + REPORT_RETENTION,
        )
        self._reports[report.id] = report
        return _copy(report)

    async def get_report(self, report_id: str) -> Optional[Report]:
        report = self._reports.get(report_id)
        return _copy(report) if report else None

    async def update_report(self, report_id: str, **fields) -> Optional[Report]:
        unknown = set(fields) - _REPORT_FIELDS
        if unknown:
            raise TypeError(f"Cannot update report fields: {', '.join(sorted(unknown))}")
        report = self._reports.get(report_id)
        if report is None:
            return None
        for key, value in fields.items():
            setattr(report, key, value)
        report.updated_at = utcnow()
        return _copy(report)

    async def assign_report(self, report_id: str, actor_id: str) -> bool:
        report = self._reports.get(report_id)
        if report is None or report.assigned_to is not None:
            return False
        report.assigned_to = actor_id
        report.updated_at = utcnow()
        return True

    async def add_private_note(self, report_id: str, note: PrivateNote) -> Optional[Report]:
        report = self._reports.get(report_id)
        if report is None:
            return None
        report.private_notes.append(_copy(note))
        report.updated_at = utcnow()
        return _copy(report)

    async def add_public_update(self, report_id: str, update: PublicUpdate) -> Optional[Report]:
        report = self._reports.get(report_id)
        if report is None:
            return None
        report.public_updates.append(_copy(update))
        report.updated_at = utcnow()
        return _copy(report)

    async def list_reports(self, query: ReportQuery, *, skip=0, limit=20) -> tuple[list[Report], int]:
        # Insertion order is creation order, so reversed() is newest first.
        matching = [r for r in reversed(self._reports.values()) if _matches(r, query)]
        return [_copy(r) for r in matching[skip:skip + limit]], len(matching)

    # ---- Chat rooms ----

    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        room = self._rooms.get(room_id)
        return _copy(room) if room else None

    async def get_or_create_room(self, report_id: str, participant_id: str) -> tuple[ChatRoom, bool]:
        existing = self._room_by_report.get(report_id)
        if existing is not None:
            return _copy(self._rooms[existing]), False
        room = ChatRoom(
            id=self._next_id("rooms"),
            report_id=report_id,
            participants={participant_id},
            created_at=utcnow(),
        )
        self._rooms[room.id] = room
        self._room_by_report[report_id] = room.id
        return _copy(room), True

    async def add_participant(self, room_id: str, user_id: str) -> Optional[ChatRoom]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        room.participants.add(user_id)
        return _copy(room)

    async def list_rooms_for(self, user_id: str) -> list[ChatRoom]:
        return [_copy(r) for r in reversed(self._rooms.values()) if user_id in r.participants]

    # ---- Messages ----

    async def create_message(self, room_id, sender_id, sender_role, body, *, is_anonymous=True) -> Message:
        message = Message(
            id=self._next_id("messages"),
            room_id=room_id,
            sender_id=sender_id,
            sender_role=sender_role,
            body=body,
            timestamp=utcnow(),
            is_anonymous=is_anonymous,
        )
        self._messages[room_id].append(message)
        return _copy(message)

    async def list_messages(self, room_id, *, after=None, limit=None) -> list[Message]:
        messages = self._messages.get(room_id, [])
        if after is not None:
            ids = [m.id for m in messages]
            if after not in ids:
                return []
            messages = messages[ids.index(after) + 1:]
        if limit is not None:
            messages = messages[:limit]
        return [_copy(m) for m in messages]

    # ---- Notifications ----

    async def create_notification(self, recipient_id, type: NotificationType, message, link=None) -> Notification:
        notification = Notification(
            id=self._next_id("notifications"),
            recipient_id=recipient_id,
            type=type,
            message=message,
            link=link,
            timestamp=utcnow(),
        )
        self._notifications[notification.id] = notification
        return _copy(notification)

    async def list_notifications(self, recipient_id, *, skip=0, limit=50) -> list[Notification]:
        mine = [n for n in reversed(self._notifications.values()) if n.recipient_id == recipient_id]
        return [_copy(n) for n in mine[skip:skip + limit]]

    async def mark_notification_read(self, notification_id, recipient_id) -> Optional[Notification]:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.recipient_id != recipient_id:
            return None
        notification.read = True
        return _copy(notification)

    # ---- Admin requests ----

    async def create_admin_request(self, user_id, submission: AdminRequestSubmission) -> AdminRequest:
        request = AdminRequest(
            id=self._next_id("admin_requests"),
            user_id=user_id,
            created_at=utcnow(),
            **submission.model_dump(),
        )
        self._admin_requests[request.id] = request
        return _copy(request)

    async def get_admin_request(self, request_id) -> Optional[AdminRequest]:
        request = self._admin_requests.get(request_id)
        return _copy(request) if request else None

    async def list_admin_requests(self, *, status=None, user_id=None) -> list[AdminRequest]:
        return [
            _copy(r) for r in reversed(self._admin_requests.values())
            if (status is None or r.status == status) and (user_id is None or r.user_id == user_id)
        ]

    async def review_admin_request(self, request_id, status, reviewer_id, notes="") -> Optional[AdminRequest]:
        request = self._admin_requests.get(request_id)
        if request is None or request.status != AdminRequestStatus.PENDING:
            return None
        request.status = status
        request.reviewed_by = reviewer_id
        request.review_notes = notes
        request.reviewed_at = utcnow()
        return _copy(request)

    # ---- Dashboard ----

    async def stats(self, since: datetime) -> StoreStats:
        reports = list(self._reports.values())
        return StoreStats(
            total_users=len(self._users),
            total_reports=len(reports),
            pending_reports=sum(1 for r in reports if r.status == ReportStatus.PENDING),
            resolved_reports=sum(1 for r in reports if r.status == ReportStatus.RESOLVED),
            recent_reports=sum(1 for r in reports if r.created_at >= since),
            active_chats=sum(
                1 for room in self._rooms.values()
                if room.report_id in self._reports
                and self._reports[room.report_id].status not in CHAT_CLOSED_STATUSES
            ),
        )

    async def report_breakdown(self, query: ReportQuery) -> ReportBreakdown:
        matching = [r for r in self._reports.values() if _matches(r, query)]
        return ReportBreakdown(
            total=len(matching),
            pending=sum(1 for r in matching if r.status == ReportStatus.PENDING),
            resolved=sum(1 for r in matching if r.status == ReportStatus.RESOLVED),
            by_category=ranked_counts(Counter(r.category.value for r in matching).items()),
            by_priority=ranked_counts(Counter(r.priority.value for r in matching).items()),
        )

    async def report_facts(self, query: ReportQuery, categories=None) -> list[ReportFacts]:
        wanted = {Category(c) for c in categories or []}
        return [
            ReportFacts(
                category=r.category,
                priority=r.priority,
                status=r.status,
                coordinates=list(r.location.coordinates),
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in reversed(self._reports.values())
            if _matches(r, query) and (not wanted or r.category in wanted)
        ]

    async def user_counts(self, active_since: datetime) -> UserCounts:
        anonymous = sum(1 for u in self._users.values() if u.is_anonymous)
        active = {r.reporter_id for r in self._reports.values() if r.created_at >= active_since}
        active.update(
            m.sender_id for messages in self._messages.values() for m in messages if m.timestamp >= active_since
        )
        return UserCounts(
            total=len(self._users),
            anonymous=anonymous,
            registered=len(self._users) - anonymous,
            active=len(active),
        )
