"""Pre-existing privileged accounts provided by campus IT.

The ephemeral store always starts with them so admin and moderator flows
stay usable without a database; the durable store gets them on startup.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from safereport.models import Role, User

logger = logging.getLogger(__name__)

_SEEDED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)

PRIVILEGED_ACCOUNTS: tuple[tuple[str, str, Role, str, str], ...] = (
    # id, email, role, anonymous id, campus id
    ("admin-001", "admin@campus.edu", Role.ADMIN, "admin-anon-001", "ADMIN001"),
    ("admin-002", "security@campus.edu", Role.ADMIN, "admin-anon-002", "ADMIN002"),
    ("admin-003", "normal@admin.com", Role.ADMIN, "admin-anon-003", "ADMIN003"),
    ("admin-004", "iapprove@admin.com", Role.MODERATOR, "moderator-anon-001", "MOD001"),
    ("moderator-001", "moderator1@example.com", Role.MODERATOR, "moderator-anon-002", "MOD002"),
)


def privileged_users() -> list[User]:
    return [
        User(
            id=user_id,
            email=email,
            role=role,
            anonymous_id=anon_id,
            campus_id=campus_id,
            is_anonymous=False,
            created_at=_SEEDED_AT,
        )
        for user_id, email, role, anon_id, campus_id in PRIVILEGED_ACCOUNTS
    ]


async def seed_privileged_accounts(store) -> int:
    """Insert any missing privileged account. Returns how many were checked."""
    users = privileged_users()
    for user in users:
        await store.ensure_user(user)
    logger.info("Privileged accounts ready in %s store (%d)", store.name, len(users))
    return len(users)
