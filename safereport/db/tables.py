"""SQLAlchemy ORM tables for the durable store.

Datetimes are stored as naive UTC; the store converts on the way in and out.
Participants, private notes and public updates live in child tables so an
append never rewrites the parent row.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, JSON, Boolean,
    ForeignKey, Index
)
from sqlalchemy.orm import DeclarativeBase


def _now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid():
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    """Reporter, admin or moderator. Never hard-deleted; retention is tracked instead."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    anonymous_id = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=True, index=True)
    role = Column(String(20), nullable=False, default="user")  # user, admin, moderator
    is_anonymous = Column(Boolean, nullable=False, default=True)
    campus_id = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_now)
    data_retention_at = Column(DateTime, nullable=True, index=True)


class ReportRow(Base):
    """Incident report. ``assigned_to`` is only ever written by a conditional update."""
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=_uuid)
    reporter_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(40), nullable=False)
    ai_category = Column(String(40), nullable=True)
    priority = Column(String(20), nullable=False, default="medium")  # low, medium, high, critical
    sentiment = Column(String(20), nullable=False, default="neutral")
    status = Column(String(20), nullable=False, default="pending")
    location = Column(JSON, nullable=False)  # {coordinates: [lon, lat], address, building, floor}
    incident_time = Column(DateTime, nullable=False)
    attachments = Column(JSON, default=list)
    assigned_to = Column(String(36), nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_now, index=True)
    updated_at = Column(DateTime, default=_now)
    data_retention_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_report_status_created", "status", "created_at"),
        Index("ix_report_category_created", "category", "created_at"),
        Index("ix_report_priority_status", "priority", "status"),
    )


class ReportNoteRow(Base):
    """Private admin note; never shown to the reporter."""
    __tablename__ = "report_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    note = Column(Text, nullable=False)
    added_by = Column(String(36), nullable=False)
    added_at = Column(DateTime, default=_now)


class ReportUpdateRow(Base):
    """Public update visible to the reporter. Deliberately carries no author."""
    __tablename__ = "report_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    added_at = Column(DateTime, default=_now)


class ChatRoomRow(Base):
    """One room per report."""
    __tablename__ = "chat_rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, index=True)


class ChatParticipantRow(Base):
    __tablename__ = "chat_participants"

    room_id = Column(Integer, ForeignKey("chat_rooms.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), primary_key=True, index=True)
    joined_at = Column(DateTime, default=_now)


class MessageRow(Base):
    """Immutable chat message; (timestamp, id) is the in-room order."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), nullable=False)
    sender_role = Column(String(20), nullable=False)
    body = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=_now, nullable=False)
    is_anonymous = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_message_room_timestamp", "room_id", "timestamp"),
    )


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String(36), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="other")  # chat, status, other
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, default=_now)


class AdminRequestRow(Base):
    """Request for elevation to admin. Terminal once reviewed."""
    __tablename__ = "admin_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    role = Column(String(100), nullable=False)
    department = Column(String(200), nullable=False)
    experience = Column(Text, nullable=False)
    responsibilities = Column(Text, nullable=False)
    urgency = Column(String(20), nullable=False)
    contact_info = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, approved, rejected
    created_at = Column(DateTime, default=_now)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_admin_request_status", "status"),
    )
