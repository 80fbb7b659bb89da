"""Requests from users to be elevated to admin, reviewed by moderators."""
from __future__ import annotations

import logging
from typing import Optional

from safereport.errors import Conflict, NotFound
from safereport.models import (
    AdminRequest,
    AdminRequestStatus,
    AdminRequestSubmission,
    NotificationType,
    Role,
    User,
    parse_input,
)
from safereport.policy import Capability, is_privileged, require
from safereport.store.base import Store

logger = logging.getLogger(__name__)


class AdminRequestService:
    def __init__(self, store: Store, notifications=None):
        self.store = store
        self.notifications = notifications

    async def request_admin(self, user: User, data: AdminRequestSubmission | dict) -> AdminRequest:
        submission = parse_input(AdminRequestSubmission, data)
        if is_privileged(user):
            raise Conflict("You already have admin privileges")
        pending = await self.store.list_admin_requests(status=AdminRequestStatus.PENDING, user_id=user.id)
        if pending:
            raise Conflict("You already have a pending admin request")
        request = await self.store.create_admin_request(user.id, submission)
        logger.info("Admin request %s filed by %s (urgency=%s)", request.id, user.id, request.urgency.value)
        return request

    async def list(
        self, reviewer: User, status: Optional[AdminRequestStatus | str] = None
    ) -> list[tuple[AdminRequest, Optional[User]]]:
        """Requests paired with their requester, newest first."""
        require(reviewer, Capability.REVIEW_ADMIN_REQUESTS)
        status = AdminRequestStatus(status) if status is not None else None
        requests = await self.store.list_admin_requests(status=status)
        users: dict[str, Optional[User]] = {}
        for request in requests:
            if request.user_id not in users:
                users[request.user_id] = await self.store.get_user(request.user_id)
        return [(r, users[r.user_id]) for r in requests]

    async def approve(self, request_id: str, reviewer: User, notes: str = "") -> AdminRequest:
        return await self._review(request_id, reviewer, AdminRequestStatus.APPROVED, notes)

    async def reject(self, request_id: str, reviewer: User, notes: str = "") -> AdminRequest:
        return await self._review(request_id, reviewer, AdminRequestStatus.REJECTED, notes)

    async def _review(
        self, request_id: str, reviewer: User, status: AdminRequestStatus, notes: str
    ) -> AdminRequest:
        require(reviewer, Capability.REVIEW_ADMIN_REQUESTS)
        existing = await self.store.get_admin_request(request_id)
        if existing is None:
            raise NotFound("Admin request not found")
        reviewed = None
        if existing.status == AdminRequestStatus.PENDING:
            reviewed = await self.store.review_admin_request(request_id, status, reviewer.id, notes or "")
            if reviewed is None:
                # Another reviewer got there first
                existing = await self.store.get_admin_request(request_id) or existing
        if reviewed is None:
            raise Conflict(f"Admin request has already been {existing.status.value}")

        if status == AdminRequestStatus.APPROVED:
            await self.store.set_user_role(reviewed.user_id, Role.ADMIN)
        logger.info("Admin request %s %s by %s", request_id, status.value, reviewer.id)

        if self.notifications is not None:
            await self.notifications.fan_out(
                [reviewed.user_id], NotificationType.OTHER, f"Your admin request was {status.value}"
            )
        return reviewed
