"""Durable store backed by async SQLAlchemy (SQLite in dev, PostgreSQL in prod).

Every method runs in its own short session and commits before returning, so
reads in the same process always see prior writes. Connectivity failures are
surfaced as ``Unavailable``; they are never retried here.
"""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select, text, union, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safereport.db.tables import (
    AdminRequestRow,
    ChatParticipantRow,
    ChatRoomRow,
    MessageRow,
    NotificationRow,
    ReportNoteRow,
    ReportRow,
    ReportUpdateRow,
    UserRow,
)
from safereport.errors import Unavailable
from safereport.models import (
    CHAT_CLOSED_STATUSES,
    REPORT_RETENTION,
    USER_RETENTION,
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
    Priority,
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
)
from safereport.store.base import Store, ranked_counts

logger = logging.getLogger(__name__)

_REPORT_FIELDS = frozenset({
    "title", "description", "category", "location", "incident_time",
    "status", "priority", "sentiment", "ai_category",
})


def _naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware -> naive UTC for storage."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Largest value a signed 64-bit INTEGER column holds
_MAX_INT_ID = 2**63 - 1


def _int_id(value) -> Optional[int]:
    """Parse a public id into a row key; None for anything no row could have."""
    if not isinstance(value, str) or not value.isascii() or not value.isdigit():
        return None
    pk = int(value)
    return pk if pk <= _MAX_INT_ID else None


def _column_value(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return _naive(value)
    return value


# ---- Row -> model converters ----

def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        anonymous_id=row.anonymous_id,
        email=row.email,
        role=row.role,
        is_anonymous=row.is_anonymous,
        campus_id=row.campus_id,
        is_active=row.is_active,
        created_at=_aware(row.created_at),
        data_retention_at=_aware(row.data_retention_at),
    )


def _row_to_report(row: ReportRow, notes: list[ReportNoteRow], updates: list[ReportUpdateRow]) -> Report:
    return Report(
        id=row.id,
        reporter_id=row.reporter_id,
        title=row.title,
        description=row.description,
        category=row.category,
        ai_category=row.ai_category,
        priority=row.priority,
        sentiment=row.sentiment,
        status=row.status,
        location=row.location,
        incident_time=_aware(row.incident_time),
        attachments=row.attachments or [],
        assigned_to=row.assigned_to,
        private_notes=[
            PrivateNote(note=n.note, added_by=n.added_by, added_at=_aware(n.added_at)) for n in notes
        ],
        public_updates=[
            PublicUpdate(message=u.message, added_at=_aware(u.added_at)) for u in updates
        ],
        is_anonymous=row.is_anonymous,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        data_retention_at=_aware(row.data_retention_at),
    )


def _row_to_message(row: MessageRow) -> Message:
    return Message(
        id=str(row.id),
        room_id=str(row.room_id),
        sender_id=row.sender_id,
        sender_role=row.sender_role,
        body=row.body,
        timestamp=_aware(row.timestamp),
        is_anonymous=row.is_anonymous,
    )


def _row_to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=str(row.id),
        recipient_id=row.recipient_id,
        type=row.type,
        message=row.message,
        link=row.link,
        read=row.read,
        timestamp=_aware(row.timestamp),
    )


def _row_to_admin_request(row: AdminRequestRow) -> AdminRequest:
    return AdminRequest(
        id=row.id,
        user_id=row.user_id,
        reason=row.reason,
        role=row.role,
        department=row.department,
        experience=row.experience,
        responsibilities=row.responsibilities,
        urgency=row.urgency,
        contact_info=row.contact_info,
        status=row.status,
        created_at=_aware(row.created_at),
        reviewed_by=row.reviewed_by,
        reviewed_at=_aware(row.reviewed_at),
        review_notes=row.review_notes,
    )


def _report_conditions(query: ReportQuery) -> list:
    conditions = []
    if query.reporter_id is not None:
        conditions.append(ReportRow.reporter_id == query.reporter_id)
    if query.category is not None:
        conditions.append(ReportRow.category == _column_value(query.category))
    if query.status is not None:
        conditions.append(ReportRow.status == _column_value(query.status))
    if query.priority is not None:
        conditions.append(ReportRow.priority == _column_value(query.priority))
    if query.created_after is not None:
        conditions.append(ReportRow.created_at >= _naive(query.created_after))
    if query.created_before is not None:
        conditions.append(ReportRow.created_at <= _naive(query.created_before))
    return conditions


class SqlStore(Store):
    """Store implementation over an ``async_sessionmaker``."""

    name = "durable"

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._sessionmaker() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Durable store operation failed: %s", exc.__class__.__name__)
            raise Unavailable() from exc

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))

    # ---- Users ----

    async def create_user(self, anonymous_id, *, campus_id=None, email=None, is_anonymous=True) -> User:
        now = _now()
        row = UserRow(
            id=str(uuid.uuid4()),
            anonymous_id=anonymous_id,
            email=email,
            campus_id=campus_id,
            is_anonymous=is_anonymous,
            role=Role.USER.value,
            is_active=True,
            created_at=now,
            data_retention_at=now + USER_RETENTION,
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return _row_to_user(row)

    async def ensure_user(self, user: User) -> User:
        async with self._session() as session:
            existing = await session.get(UserRow, user.id)
            if existing is not None:
                return _row_to_user(existing)
            row = UserRow(
                id=user.id,
                anonymous_id=user.anonymous_id,
                email=user.email,
                role=user.role.value,
                is_anonymous=user.is_anonymous,
                campus_id=user.campus_id,
                is_active=user.is_active,
                created_at=_naive(user.created_at),
                data_retention_at=_naive(user.data_retention_at),
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # Another worker seeded it first
                await session.rollback()
                existing = await session.get(UserRow, user.id)
                if existing is None:
                    raise
                return _row_to_user(existing)
            return _row_to_user(row)

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._session() as session:
            row = await session.get(UserRow, user_id)
            return _row_to_user(row) if row else None

    async def set_user_role(self, user_id: str, role: Role) -> Optional[User]:
        async with self._session() as session:
            row = await session.get(UserRow, user_id)
            if row is None:
                return None
            row.role = Role(role).value
            await session.commit()
            return _row_to_user(row)

    # ---- Reports ----

    async def _hydrate(self, session: AsyncSession, rows: list[ReportRow]) -> list[Report]:
        ids = [r.id for r in rows]
        notes: dict[str, list[ReportNoteRow]] = defaultdict(list)
        updates: dict[str, list[ReportUpdateRow]] = defaultdict(list)
        if ids:
            result = await session.execute(
                select(ReportNoteRow).where(ReportNoteRow.report_id.in_(ids)).order_by(ReportNoteRow.id)
            )
            for note in result.scalars():
                notes[note.report_id].append(note)
            result = await session.execute(
                select(ReportUpdateRow).where(ReportUpdateRow.report_id.in_(ids)).order_by(ReportUpdateRow.id)
            )
            for upd in result.scalars():
                updates[upd.report_id].append(upd)
        return [_row_to_report(r, notes[r.id], updates[r.id]) for r in rows]

    async def _load_report(self, session: AsyncSession, report_id: str) -> Optional[Report]:
        row = await session.get(ReportRow, report_id, populate_existing=True)
        if row is None:
            return None
        return (await self._hydrate(session, [row]))[0]

    async def create_report(self, reporter_id, submission: ReportSubmission, *, is_anonymous=True) -> Report:
        now = _now()
        row = ReportRow(
            id=str(uuid.uuid4()),
            reporter_id=reporter_id,
            title=submission.title,
            description=submission.description,
            category=submission.category.value,
            priority="medium",
            sentiment="neutral",
            status=ReportStatus.PENDING.value,
            location=submission.location.model_dump(mode="json"),
            incident_time=_naive(submission.incident_time) or now,
            attachments=[a.model_dump(mode="json") for a in submission.attachments],
            is_anonymous=is_anonymous,
            created_at=now,
            updated_at=now,
            data_retention_at=now + REPORT_RETENTION,
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return _row_to_report(row, [], [])

    async def get_report(self, report_id: str) -> Optional[Report]:
        async with self._session() as session:
            return await self._load_report(session, report_id)

    async def update_report(self, report_id: str, **fields) -> Optional[Report]:
        unknown = set(fields) - _REPORT_FIELDS
        if unknown:
            raise TypeError(f"Cannot update report fields: {', '.join(sorted(unknown))}")
        values = {key: _column_value(value) for key, value in fields.items()}
        values["updated_at"] = _now()
        async with self._session() as session:
            result = await session.execute(
                update(ReportRow).where(ReportRow.id == report_id).values(**values)
            )
            await session.commit()
            if result.rowcount == 0:
                return None
            return await self._load_report(session, report_id)

    async def assign_report(self, report_id: str, actor_id: str) -> bool:
        # Single conditional UPDATE: the database decides who wins.
        async with self._session() as session:
            result = await session.execute(
                update(ReportRow)
                .where(ReportRow.id == report_id, ReportRow.assigned_to.is_(None))
                .values(assigned_to=actor_id, updated_at=_now())
            )
            await session.commit()
            return result.rowcount == 1

    async def _append(self, report_id: str, child) -> Optional[Report]:
        async with self._session() as session:
            exists = await session.scalar(select(ReportRow.id).where(ReportRow.id == report_id))
            if exists is None:
                return None
            session.add(child)
            await session.execute(
                update(ReportRow).where(ReportRow.id == report_id).values(updated_at=_now())
            )
            await session.commit()
            return await self._load_report(session, report_id)

    async def add_private_note(self, report_id: str, note: PrivateNote) -> Optional[Report]:
        return await self._append(report_id, ReportNoteRow(
            report_id=report_id, note=note.note, added_by=note.added_by, added_at=_naive(note.added_at),
        ))

    async def add_public_update(self, report_id: str, update: PublicUpdate) -> Optional[Report]:
        return await self._append(report_id, ReportUpdateRow(
            report_id=report_id, message=update.message, added_at=_naive(update.added_at),
        ))

    async def list_reports(self, query: ReportQuery, *, skip=0, limit=20) -> tuple[list[Report], int]:
        count_stmt = select(func.count(ReportRow.id))
        stmt = select(ReportRow)
        for condition in _report_conditions(query):
            count_stmt = count_stmt.where(condition)
            stmt = stmt.where(condition)
        stmt = stmt.order_by(ReportRow.created_at.desc()).offset(skip).limit(limit)
        async with self._session() as session:
            total = (await session.execute(count_stmt)).scalar() or 0
            rows = list((await session.execute(stmt)).scalars().all())
            return await self._hydrate(session, rows), total

    # ---- Chat rooms ----

    async def _load_rooms(self, session: AsyncSession, rows: list[ChatRoomRow]) -> list[ChatRoom]:
        members: dict[int, set[str]] = defaultdict(set)
        ids = [r.id for r in rows]
        if ids:
            result = await session.execute(
                select(ChatParticipantRow.room_id, ChatParticipantRow.user_id)
                .where(ChatParticipantRow.room_id.in_(ids))
            )
            for room_id, user_id in result.all():
                members[room_id].add(user_id)
        return [
            ChatRoom(id=str(r.id), report_id=r.report_id, participants=members[r.id], created_at=_aware(r.created_at))
            for r in rows
        ]

    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        pk = _int_id(room_id)
        if pk is None:
            return None
        async with self._session() as session:
            row = await session.get(ChatRoomRow, pk)
            if row is None:
                return None
            return (await self._load_rooms(session, [row]))[0]

    async def get_or_create_room(self, report_id: str, participant_id: str) -> tuple[ChatRoom, bool]:
        by_report = select(ChatRoomRow).where(ChatRoomRow.report_id == report_id)
        async with self._session() as session:
            row = await session.scalar(by_report)
            if row is not None:
                return (await self._load_rooms(session, [row]))[0], False
            now = _now()
            row = ChatRoomRow(report_id=report_id, created_at=now)
            session.add(row)
            try:
                await session.flush()
                session.add(ChatParticipantRow(room_id=row.id, user_id=participant_id, joined_at=now))
                await session.commit()
            except IntegrityError:
                # Lost the race on the unique report_id; the winner's room is the room.
                await session.rollback()
                row = await session.scalar(by_report)
                if row is None:
                    raise
                return (await self._load_rooms(session, [row]))[0], False
            return ChatRoom(
                id=str(row.id), report_id=report_id, participants={participant_id}, created_at=_aware(now)
            ), True

    async def add_participant(self, room_id: str, user_id: str) -> Optional[ChatRoom]:
        pk = _int_id(room_id)
        if pk is None:
            return None
        async with self._session() as session:
            row = await session.get(ChatRoomRow, pk)
            if row is None:
                return None
            member = await session.get(ChatParticipantRow, (pk, user_id))
            if member is None:
                session.add(ChatParticipantRow(room_id=pk, user_id=user_id, joined_at=_now()))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
            row = await session.get(ChatRoomRow, pk)
            return (await self._load_rooms(session, [row]))[0]

    async def list_rooms_for(self, user_id: str) -> list[ChatRoom]:
        stmt = (
            select(ChatRoomRow)
            .join(ChatParticipantRow, ChatParticipantRow.room_id == ChatRoomRow.id)
            .where(ChatParticipantRow.user_id == user_id)
            .order_by(ChatRoomRow.created_at.desc(), ChatRoomRow.id.desc())
        )
        async with self._session() as session:
            rows = list((await session.execute(stmt)).scalars().all())
            return await self._load_rooms(session, rows)

    # ---- Messages ----

    async def create_message(self, room_id, sender_id, sender_role, body, *, is_anonymous=True) -> Message:
        row = MessageRow(
            room_id=int(room_id),
            sender_id=sender_id,
            sender_role=Role(sender_role).value,
            body=body,
            timestamp=_now(),
            is_anonymous=is_anonymous,
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return _row_to_message(row)

    async def list_messages(self, room_id, *, after=None, limit=None) -> list[Message]:
        pk = _int_id(room_id)
        if pk is None:
            return []
        stmt = select(MessageRow).where(MessageRow.room_id == pk)
        async with self._session() as session:
            if after is not None:
                cursor_pk = _int_id(after)
                cursor = await session.get(MessageRow, cursor_pk) if cursor_pk is not None else None
                if cursor is None or cursor.room_id != pk:
                    return []
                stmt = stmt.where(or_(
                    MessageRow.timestamp > cursor.timestamp,
                    and_(MessageRow.timestamp == cursor.timestamp, MessageRow.id > cursor.id),
                ))
            stmt = stmt.order_by(MessageRow.timestamp, MessageRow.id)
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_message(r) for r in rows]

    # ---- Notifications ----

    async def create_notification(self, recipient_id, type: NotificationType, message, link=None) -> Notification:
        row = NotificationRow(
            recipient_id=recipient_id,
            type=NotificationType(type).value,
            message=message,
            link=link,
            read=False,
            timestamp=_now(),
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return _row_to_notification(row)

    async def list_notifications(self, recipient_id, *, skip=0, limit=50) -> list[Notification]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.recipient_id == recipient_id)
            .order_by(NotificationRow.timestamp.desc(), NotificationRow.id.desc())
            .offset(skip)
            .limit(limit)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_notification(r) for r in rows]

    async def mark_notification_read(self, notification_id, recipient_id) -> Optional[Notification]:
        pk = _int_id(notification_id)
        if pk is None:
            return None
        async with self._session() as session:
            result = await session.execute(
                update(NotificationRow)
                .where(NotificationRow.id == pk, NotificationRow.recipient_id == recipient_id)
                .values(read=True)
            )
            await session.commit()
            if result.rowcount == 0:
                return None
            row = await session.get(NotificationRow, pk, populate_existing=True)
            return _row_to_notification(row)

    # ---- Admin requests ----

    async def create_admin_request(self, user_id, submission: AdminRequestSubmission) -> AdminRequest:
        row = AdminRequestRow(
            id=str(uuid.uuid4()),
            user_id=user_id,
            reason=submission.reason,
            role=submission.role,
            department=submission.department,
            experience=submission.experience,
            responsibilities=submission.responsibilities,
            urgency=submission.urgency.value,
            contact_info=submission.contact_info,
            status=AdminRequestStatus.PENDING.value,
            created_at=_now(),
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
            return _row_to_admin_request(row)

    async def get_admin_request(self, request_id) -> Optional[AdminRequest]:
        async with self._session() as session:
            row = await session.get(AdminRequestRow, request_id)
            return _row_to_admin_request(row) if row else None

    async def list_admin_requests(self, *, status=None, user_id=None) -> list[AdminRequest]:
        stmt = select(AdminRequestRow)
        if status is not None:
            stmt = stmt.where(AdminRequestRow.status == AdminRequestStatus(status).value)
        if user_id is not None:
            stmt = stmt.where(AdminRequestRow.user_id == user_id)
        stmt = stmt.order_by(AdminRequestRow.created_at.desc())
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_admin_request(r) for r in rows]

    async def review_admin_request(self, request_id, status, reviewer_id, notes="") -> Optional[AdminRequest]:
        async with self._session() as session:
            result = await session.execute(
                update(AdminRequestRow)
                .where(
                    AdminRequestRow.id == request_id,
                    AdminRequestRow.status == AdminRequestStatus.PENDING.value,
                )
                .values(
                    status=AdminRequestStatus(status).value,
                    reviewed_by=reviewer_id,
                    review_notes=notes,
                    reviewed_at=_now(),
                )
            )
            await session.commit()
            if result.rowcount == 0:
                return None
            row = await session.get(AdminRequestRow, request_id, populate_existing=True)
            return _row_to_admin_request(row)

    # ---- Dashboard ----

    async def stats(self, since: datetime) -> StoreStats:
        closed = [s.value for s in CHAT_CLOSED_STATUSES]
        async with self._session() as session:
            async def count(stmt) -> int:
                return (await session.execute(stmt)).scalar() or 0

            return StoreStats(
                total_users=await count(select(func.count(UserRow.id))),
                total_reports=await count(select(func.count(ReportRow.id))),
                pending_reports=await count(
                    select(func.count(ReportRow.id)).where(ReportRow.status == ReportStatus.PENDING.value)
                ),
                resolved_reports=await count(
                    select(func.count(ReportRow.id)).where(ReportRow.status == ReportStatus.RESOLVED.value)
                ),
                recent_reports=await count(
                    select(func.count(ReportRow.id)).where(ReportRow.created_at >= _naive(since))
                ),
                active_chats=await count(
                    select(func.count(ChatRoomRow.id))
                    .join(ReportRow, ReportRow.id == ChatRoomRow.report_id)
                    .where(ReportRow.status.notin_(closed))
                ),
            )

    async def report_breakdown(self, query: ReportQuery) -> ReportBreakdown:
        conditions = _report_conditions(query)

        async with self._session() as session:
            async def grouped(column) -> dict[str, int]:
                stmt = select(column, func.count(ReportRow.id)).group_by(column)
                for condition in conditions:
                    stmt = stmt.where(condition)
                return ranked_counts((await session.execute(stmt)).all())

            by_status = await grouped(ReportRow.status)
            return ReportBreakdown(
                total=sum(by_status.values()),
                pending=by_status.get(ReportStatus.PENDING.value, 0),
                resolved=by_status.get(ReportStatus.RESOLVED.value, 0),
                by_category=await grouped(ReportRow.category),
                by_priority=await grouped(ReportRow.priority),
            )

    async def report_facts(self, query: ReportQuery, categories=None) -> list[ReportFacts]:
        stmt = select(
            ReportRow.category,
            ReportRow.priority,
            ReportRow.status,
            ReportRow.location,
            ReportRow.created_at,
            ReportRow.updated_at,
        )
        for condition in _report_conditions(query):
            stmt = stmt.where(condition)
        if categories:
            stmt = stmt.where(ReportRow.category.in_([Category(c).value for c in categories]))
        stmt = stmt.order_by(ReportRow.created_at.desc(), ReportRow.id)
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ReportFacts(
                category=Category(row.category),
                priority=Priority(row.priority),
                status=ReportStatus(row.status),
                coordinates=list(row.location["coordinates"]),
                created_at=_aware(row.created_at),
                updated_at=_aware(row.updated_at),
            )
            for row in rows
        ]

    async def user_counts(self, active_since: datetime) -> UserCounts:
        since = _naive(active_since)
        active = union(
            select(ReportRow.reporter_id.label("user_id")).where(ReportRow.created_at >= since),
            select(MessageRow.sender_id.label("user_id")).where(MessageRow.timestamp >= since),
        ).subquery()
        async with self._session() as session:
            async def count(stmt) -> int:
                return (await session.execute(stmt)).scalar() or 0

            total = await count(select(func.count(UserRow.id)))
            anonymous = await count(select(func.count(UserRow.id)).where(UserRow.is_anonymous.is_(True)))
            return UserCounts(
                total=total,
                anonymous=anonymous,
                registered=total - anonymous,
                active=await count(select(func.count()).select_from(active)),
            )
