"""Anonymous sign-in, bearer authentication and admin requests over HTTP."""
from __future__ import annotations

import pytest

from safereport.auth import authenticate, create_access_token, decode_token
from safereport.errors import Unauthenticated
from safereport.models import Role, User


@pytest.mark.asyncio
async def test_anonymous_login_issues_token(client):
    r = await client.post("/api/v1/auth/anonymous", json={"campus_id": "berkeley"})
    assert r.status_code == 201
    data = r.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == "user"
    assert data["user"]["is_anonymous"] is True
    assert data["user"]["campus_id"] == "berkeley"

    claims = decode_token(data["access_token"])
    assert claims["sub"] == data["user"]["id"]
    assert claims["anon"] == data["user"]["anonymous_id"]


@pytest.mark.asyncio
async def test_anonymous_login_without_body(client):
    first = await client.post("/api/v1/auth/anonymous")
    second = await client.post("/api/v1/auth/anonymous")
    assert first.status_code == second.status_code == 201
    assert first.json()["user"]["anonymous_id"] != second.json()["user"]["anonymous_id"]


@pytest.mark.asyncio
async def test_me(client, reporter):
    user, headers = reporter
    r = await client.get("/api/v1/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user["id"]


@pytest.mark.asyncio
async def test_missing_and_bad_tokens(client):
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "Access denied. No token provided."

    r = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.token"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


def test_tampered_token_rejected():
    user = User(id="u1", anonymous_id="anon-1")
    token = create_access_token(user)["access_token"]
    header, payload, signature = token.split(".")
    assert decode_token(f"{header}.{payload}.{signature[::-1]}") is None
    assert decode_token(token)["role"] == "user"


def test_expired_token_rejected():
    user = User(id="u1", anonymous_id="anon-1")
    token = create_access_token(user, ttl=-5)["access_token"]
    assert decode_token(token) is None


@pytest.mark.asyncio
async def test_deactivated_user_rejected(memory_store):
    user = await memory_store.ensure_user(User(id="u-gone", anonymous_id="anon-gone", is_active=False))
    token = create_access_token(user)["access_token"]
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(memory_store, token)
    assert exc.value.message == "Account is deactivated"


@pytest.mark.asyncio
async def test_claims_stand_in_for_unknown_user(memory_store):
    user = User(id="durable-only", anonymous_id="anon-d", role=Role.ADMIN)
    resolved = await authenticate(memory_store, create_access_token(user)["access_token"])
    assert resolved.id == "durable-only"
    assert resolved.role == Role.ADMIN


@pytest.mark.asyncio
async def test_request_admin_once(client, reporter):
    _, headers = reporter
    body = {
        "reason": "I run the RA program",
        "role": "Resident Advisor",
        "department": "Housing",
        "experience": "Two years",
        "responsibilities": "Floor safety",
        "urgency": "medium",
    }
    r = await client.post("/api/v1/auth/request-admin", json=body, headers=headers)
    assert r.status_code == 201
    assert r.json()["request"]["status"] == "pending"

    r = await client.post("/api/v1/auth/request-admin", json=body, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


@pytest.mark.asyncio
async def test_token_claims_carry_role(admin_headers, client):
    r = await client.get("/api/v1/auth/me", headers=admin_headers)
    assert r.json()["user"]["role"] == Role.ADMIN.value
