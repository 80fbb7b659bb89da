"""Bearer-token verification for HTTP requests and WebSocket handshakes."""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
import uuid
from typing import Optional

from config.settings import settings
from safereport.errors import Unauthenticated
from safereport.models import Role, User
from safereport.store.base import Store

logger = logging.getLogger(__name__)

# ---- JWT (HS256, signed with the shared campus secret) ----

_JWT_ALGO = "HS256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


def _sign(payload: dict) -> str:
    header = _b64url(json.dumps({"alg": _JWT_ALGO, "typ": "JWT"}).encode())
    body = _b64url(json.dumps(payload).encode())
    sig_input = f"{header}.{body}".encode()
    sig = hmac.new(settings.JWT_SECRET.encode(), sig_input, hashlib.sha256).digest()
    return f"{header}.{body}.{_b64url(sig)}"


def decode_token(token: str) -> Optional[dict]:
    """Return the payload of a valid, unexpired access token, else None."""
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return None
        sig_input = f"{parts[0]}.{parts[1]}".encode()
        expected = hmac.new(settings.JWT_SECRET.encode(), sig_input, hashlib.sha256).digest()
        actual = _b64url_decode(parts[2])
        if not hmac.compare_digest(expected, actual):
            return None
        payload = json.loads(_b64url_decode(parts[1]))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
        return None
    if payload.get("type") != "access" or not payload.get("sub"):
        return None
    return payload


def create_access_token(user: User, ttl: Optional[int] = None) -> dict:
    now = int(time.time())
    ttl = ttl if ttl is not None else settings.ACCESS_TOKEN_TTL_SECONDS
    access = _sign({
        "sub": user.id,
        "role": user.role.value,
        "anon": user.anonymous_id,
        "is_anonymous": user.is_anonymous,
        "iat": now,
        "exp": now + ttl,
        "type": "access",
        "jti": uuid.uuid4().hex[:8],
    })
    return {"access_token": access, "token_type": "bearer", "expires_in": ttl}


def _user_from_claims(payload: dict) -> Optional[User]:
    try:
        return User(
            id=payload["sub"],
            anonymous_id=payload.get("anon") or payload["sub"],
            role=Role(payload.get("role", Role.USER.value)),
            is_anonymous=bool(payload.get("is_anonymous", True)),
        )
    except (KeyError, ValueError):
        return None


async def authenticate(store: Store, token: Optional[str]) -> User:
    """Resolve a bearer token to the acting user.

    The selected store is authoritative. When it doesn't know the subject
    (the memory store during a database outage) the signed claims stand in,
    so existing sessions survive a fallback.
    """
    if not token:
        raise Unauthenticated("Access denied. No token provided.")
    payload = decode_token(token)
    if payload is None:
        raise Unauthenticated("Invalid token")
    user = await store.get_user(payload["sub"])
    if user is None:
        user = _user_from_claims(payload)
        if user is None:
            raise Unauthenticated("Invalid token")
        logger.debug("User %s not in %s store; using token claims", payload["sub"], store.name)
    if not user.is_active:
        raise Unauthenticated("Account is deactivated")
    return user
