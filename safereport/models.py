"""Domain models: the shapes every store backend reads and writes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from safereport.errors import ValidationError

USER_RETENTION = timedelta(days=365)
REPORT_RETENTION = timedelta(days=2 * 365)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes from query strings are taken to be UTC."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class ReportStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


# Chat is read-only once a report reaches one of these.
CHAT_CLOSED_STATUSES = frozenset({ReportStatus.RESOLVED, ReportStatus.CLOSED})


class Category(str, Enum):
    HARASSMENT = "harassment"
    ASSAULT = "assault"
    THEFT = "theft"
    VANDALISM = "vandalism"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    EMERGENCY = "emergency"
    SAFETY_HAZARD = "safety_hazard"
    DISCRIMINATION = "discrimination"
    BULLYING = "bullying"
    OTHER = "other"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    DISTRESSED = "distressed"


class NotificationType(str, Enum):
    CHAT = "chat"
    STATUS = "status"
    OTHER = "other"


class AdminRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ---- Entities ----


class User(BaseModel):
    id: str
    anonymous_id: str
    email: Optional[str] = None
    role: Role = Role.USER
    is_anonymous: bool = True
    campus_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    data_retention_at: Optional[datetime] = None


class Location(BaseModel):
    coordinates: list[float] = Field(..., min_length=2, max_length=2, description="[longitude, latitude]")
    address: str = Field("", max_length=200)
    building: str = Field("", max_length=100)
    floor: str = Field("", max_length=20)

    @field_validator("coordinates")
    @classmethod
    def _in_range(cls, value: list[float]) -> list[float]:
        if any(c < -180 or c > 180 for c in value):
            raise ValueError("Coordinates must be between -180 and 180")
        return value


class Attachment(BaseModel):
    filename: str
    original_name: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None
    path: Optional[str] = None


class PrivateNote(BaseModel):
    note: str
    added_by: str
    added_at: datetime = Field(default_factory=utcnow)


class PublicUpdate(BaseModel):
    message: str
    added_at: datetime = Field(default_factory=utcnow)


class Report(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str
    reporter_id: str
    title: str
    description: str
    category: Category
    ai_category: Optional[Category] = None
    priority: Priority = Priority.MEDIUM
    sentiment: Sentiment = Sentiment.NEUTRAL
    status: ReportStatus = ReportStatus.PENDING
    location: Location
    incident_time: datetime
    attachments: list[Attachment] = []
    assigned_to: Optional[str] = None
    private_notes: list[PrivateNote] = []
    public_updates: list[PublicUpdate] = []
    is_anonymous: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    data_retention_at: Optional[datetime] = None


class ChatRoom(BaseModel):
    id: str
    report_id: str
    participants: set[str] = set()
    created_at: datetime = Field(default_factory=utcnow)


class Message(BaseModel):
    id: str
    room_id: str
    sender_id: str
    sender_role: Role
    body: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_anonymous: bool = True


class Notification(BaseModel):
    id: str
    recipient_id: str
    type: NotificationType = NotificationType.OTHER
    message: str
    link: Optional[str] = None
    read: bool = False
    timestamp: datetime = Field(default_factory=utcnow)


class AdminRequest(BaseModel):
    id: str
    user_id: str
    reason: str
    role: str
    department: str
    experience: str
    responsibilities: str
    urgency: Priority
    contact_info: Optional[str] = None
    status: AdminRequestStatus = AdminRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None


# ---- Inputs ----


class ReportSubmission(BaseModel):
    """A new incident report as composed by the reporter."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    category: Category
    location: Location
    incident_time: Optional[datetime] = None
    attachments: list[Attachment] = Field(default_factory=list, max_length=5)


class ReportEdit(BaseModel):
    """Reporter edit. Attachments are deliberately absent: edits never touch them."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    category: Category
    location: Optional[Location] = None
    incident_time: Optional[datetime] = None


class AdminRequestSubmission(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(..., min_length=1, max_length=1000)
    role: str = Field(..., min_length=1, max_length=100)
    department: str = Field(..., min_length=1, max_length=200)
    experience: str = Field(..., min_length=1, max_length=1000)
    responsibilities: str = Field(..., min_length=1, max_length=1000)
    urgency: Priority
    contact_info: Optional[str] = Field(None, max_length=200)


@dataclass
class ReportQuery:
    """Filters for report listings. Unset fields don't filter."""
    reporter_id: Optional[str] = None
    category: Optional[Category] = None
    status: Optional[ReportStatus] = None
    priority: Optional[Priority] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


@dataclass
class StoreStats:
    total_users: int = 0
    total_reports: int = 0
    pending_reports: int = 0
    resolved_reports: int = 0
    recent_reports: int = 0
    active_chats: int = 0


@dataclass
class ReportBreakdown:
    """Counts over a window of reports, grouped the way the dashboard shows them."""
    total: int = 0
    pending: int = 0
    resolved: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)


@dataclass
class ReportFacts:
    """The slice of a report that analytics and the heatmap aggregate over."""
    category: Category
    priority: Priority
    status: ReportStatus
    coordinates: list[float]
    created_at: datetime
    updated_at: datetime


@dataclass
class UserCounts:
    total: int = 0
    anonymous: int = 0
    registered: int = 0
    active: int = 0


def parse_input(model_cls, data):
    """Validate ``data`` into ``model_cls``, raising our ValidationError on bad input."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except SchemaError as exc:
        first = exc.errors()[0]
        path = ".".join(str(part) for part in first["loc"]) or "body"
        raise ValidationError(f"{path}: {first['msg']}") from exc
