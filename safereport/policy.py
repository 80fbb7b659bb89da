"""Access control policy: the single place that knows what each role may do."""
from __future__ import annotations

from enum import Enum

from safereport.errors import AccessDenied
from safereport.models import Role, User


class Capability(str, Enum):
    SUBMIT_REPORT = "submit_report"
    CHAT = "chat"
    MANAGE_REPORTS = "manage_reports"          # view all, status, assign, notes, stats
    REVIEW_ADMIN_REQUESTS = "review_admin_requests"
    ADMIN_CHANNEL = "admin_channel"


_BASE = frozenset({Capability.SUBMIT_REPORT, Capability.CHAT})

_GRANTS: dict[Role, frozenset[Capability]] = {
    Role.USER: _BASE,
    Role.ADMIN: _BASE | {Capability.MANAGE_REPORTS, Capability.ADMIN_CHANNEL},
    Role.MODERATOR: _BASE | {
        Capability.MANAGE_REPORTS,
        Capability.ADMIN_CHANNEL,
        Capability.REVIEW_ADMIN_REQUESTS,
    },
}

_DENIED_MESSAGES = {
    Capability.MANAGE_REPORTS: "Access denied. Admin privileges required.",
    Capability.REVIEW_ADMIN_REQUESTS: "Access denied. Moderator privileges required.",
}


def can(role: Role, capability: Capability) -> bool:
    return capability in _GRANTS.get(Role(role), frozenset())


def is_privileged(user: User) -> bool:
    return can(user.role, Capability.MANAGE_REPORTS)


def require(user: User, capability: Capability) -> None:
    """Raise AccessDenied unless the user's role grants the capability."""
    if not user.is_active or not can(user.role, capability):
        raise AccessDenied(_DENIED_MESSAGES.get(capability))
