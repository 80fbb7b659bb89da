"""Notification feed over HTTP."""
from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_create_list_and_mark_read(client, reporter):
    _, headers = reporter
    r = await client.post("/api/v1/notifications", json={"message": "Check back tomorrow"}, headers=headers)
    assert r.status_code == 201
    created = r.json()["notification"]
    assert created["type"] == "other"
    assert created["read"] is False

    r = await client.get("/api/v1/notifications", headers=headers)
    assert [n["id"] for n in r.json()["notifications"]] == [created["id"]]

    r = await client.patch(f"/api/v1/notifications/{created['id']}/read", headers=headers)
    assert r.status_code == 200
    assert r.json()["notification"]["read"] is True


@pytest.mark.asyncio
async def test_cannot_mark_someone_elses(client, reporter, admin_headers):
    _, headers = reporter
    created = (await client.post(
        "/api/v1/notifications", json={"message": "mine"}, headers=headers
    )).json()["notification"]
    r = await client.patch(f"/api/v1/notifications/{created['id']}/read", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["message"] == "Notification not found"


@pytest.mark.asyncio
async def test_create_rejects_unknown_type(client, reporter):
    _, headers = reporter
    r = await client.post("/api/v1/notifications", json={"type": "sms", "message": "hi"}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_requires_auth(client):
    r = await client.get("/api/v1/notifications")
    assert r.status_code == 401
