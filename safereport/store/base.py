"""Store contract shared by the durable and the ephemeral backend.

Both backends must behave observably the same: ids differ in format only.
List operations are newest-first with skip/limit; messages are the one
exception and come back oldest-first.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from safereport.models import (
    AdminRequest,
    AdminRequestStatus,
    AdminRequestSubmission,
    ChatRoom,
    Message,
    Notification,
    NotificationType,
    PrivateNote,
    PublicUpdate,
    Category,
    Report,
    ReportBreakdown,
    ReportFacts,
    ReportQuery,
    ReportSubmission,
    Role,
    StoreStats,
    User,
    UserCounts,
)


def ranked_counts(pairs) -> dict[str, int]:
    """Largest count first, ties by key, so both backends list groups in the same order."""
    return dict(sorted(((str(key), int(n)) for key, n in pairs), key=lambda kv: (-kv[1], kv[0])))


class Store(ABC):
    """Async persistence operations over every SafeReport collection."""

    name: str = "store"

    @abstractmethod
    async def ping(self) -> None:
        """Liveness probe. Raises if the backend can't serve requests."""

    # ---- Users ----

    @abstractmethod
    async def create_user(
        self,
        anonymous_id: str,
        *,
        campus_id: Optional[str] = None,
        email: Optional[str] = None,
        is_anonymous: bool = True,
    ) -> User:
        """Create a plain ``user``. Elevated roles only come from ensure_user or approval."""

    @abstractmethod
    async def ensure_user(self, user: User) -> User:
        """Insert ``user`` under its own id unless that id exists; return the stored user."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def set_user_role(self, user_id: str, role: Role) -> Optional[User]: ...

    # ---- Reports ----

    @abstractmethod
    async def create_report(
        self, reporter_id: str, submission: ReportSubmission, *, is_anonymous: bool = True
    ) -> Report:
        """Create a report in ``pending`` with ``medium`` priority."""

    @abstractmethod
    async def get_report(self, report_id: str) -> Optional[Report]: ...

    @abstractmethod
    async def update_report(self, report_id: str, **fields) -> Optional[Report]:
        """Overwrite scalar report fields; returns None for an unknown id."""

    @abstractmethod
    async def assign_report(self, report_id: str, actor_id: str) -> bool:
        """Atomically set ``assigned_to`` if it is unset. True when this call set it."""

    @abstractmethod
    async def add_private_note(self, report_id: str, note: PrivateNote) -> Optional[Report]: ...

    @abstractmethod
    async def add_public_update(self, report_id: str, update: PublicUpdate) -> Optional[Report]: ...

    @abstractmethod
    async def list_reports(
        self, query: ReportQuery, *, skip: int = 0, limit: int = 20
    ) -> tuple[list[Report], int]:
        """Newest first. Returns (page, total matching)."""

    # ---- Chat rooms ----

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[ChatRoom]: ...

    @abstractmethod
    async def get_or_create_room(self, report_id: str, participant_id: str) -> tuple[ChatRoom, bool]:
        """Return the report's room, creating it with ``participant_id`` as sole member.

        The bool is True only for the call that created it.
        """

    @abstractmethod
    async def add_participant(self, room_id: str, user_id: str) -> Optional[ChatRoom]:
        """Set-add ``user_id``; repeat adds are no-ops."""

    @abstractmethod
    async def list_rooms_for(self, user_id: str) -> list[ChatRoom]: ...

    # ---- Messages ----

    @abstractmethod
    async def create_message(
        self, room_id: str, sender_id: str, sender_role: Role, body: str, *, is_anonymous: bool = True
    ) -> Message: ...

    @abstractmethod
    async def list_messages(
        self, room_id: str, *, after: Optional[str] = None, limit: Optional[int] = None
    ) -> list[Message]:
        """Oldest first. ``after`` is a message id cursor; unknown cursors yield nothing."""

    # ---- Notifications ----

    @abstractmethod
    async def create_notification(
        self,
        recipient_id: str,
        type: NotificationType,
        message: str,
        link: Optional[str] = None,
    ) -> Notification: ...

    @abstractmethod
    async def list_notifications(
        self, recipient_id: str, *, skip: int = 0, limit: int = 50
    ) -> list[Notification]: ...

    @abstractmethod
    async def mark_notification_read(self, notification_id: str, recipient_id: str) -> Optional[Notification]:
        """Only the recipient's own notification can be marked."""

    # ---- Admin requests ----

    @abstractmethod
    async def create_admin_request(self, user_id: str, submission: AdminRequestSubmission) -> AdminRequest: ...

    @abstractmethod
    async def get_admin_request(self, request_id: str) -> Optional[AdminRequest]: ...

    @abstractmethod
    async def list_admin_requests(
        self, *, status: Optional[AdminRequestStatus] = None, user_id: Optional[str] = None
    ) -> list[AdminRequest]: ...

    @abstractmethod
    async def review_admin_request(
        self,
        request_id: str,
        status: AdminRequestStatus,
        reviewer_id: str,
        notes: str = "",
    ) -> Optional[AdminRequest]:
        """Move a pending request to ``status``. None if missing or already reviewed."""

    # ---- Dashboard ----

    @abstractmethod
    async def stats(self, since: datetime) -> StoreStats:
        """Aggregate counts; ``recent_reports`` counts reports created at or after ``since``."""

    @abstractmethod
    async def report_breakdown(self, query: ReportQuery) -> ReportBreakdown:
        """Totals plus per-category and per-priority counts over the matching reports."""

    @abstractmethod
    async def report_facts(
        self, query: ReportQuery, categories: Optional[list[Category]] = None
    ) -> list[ReportFacts]:
        """Matching reports reduced to what aggregates need, newest first.

        ``categories`` narrows to any of the given categories; empty or None
        means every category.
        """

    @abstractmethod
    async def user_counts(self, active_since: datetime) -> UserCounts:
        """``active`` counts users who filed a report or sent a message since ``active_since``."""
