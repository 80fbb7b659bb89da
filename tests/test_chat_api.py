"""Chat rooms and messages over HTTP."""
from __future__ import annotations

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def report(client, reporter, report_payload):
    _, headers = reporter
    r = await client.post("/api/v1/reports", json=report_payload, headers=headers)
    return r.json()["report"]


@pytest_asyncio.fixture
async def room(client, reporter, admin_headers, report):
    _, headers = reporter
    await client.post("/api/v1/chat/room", json={"reportId": report["id"]}, headers=headers)
    r = await client.post("/api/v1/chat/room", json={"reportId": report["id"]}, headers=admin_headers)
    return r.json()["room"]


@pytest.mark.asyncio
async def test_open_room(client, reporter, admin_headers, report):
    user, headers = reporter
    r = await client.post("/api/v1/chat/room", json={"reportId": report["id"]}, headers=headers)
    assert r.status_code == 200
    first = r.json()["room"]
    assert first["participants"] == [user["id"]]

    r = await client.post("/api/v1/chat/room", json={"report_id": report["id"]}, headers=admin_headers)
    second = r.json()["room"]
    assert second["id"] == first["id"]
    assert second["participants"] == sorted([user["id"], "admin-001"])


@pytest.mark.asyncio
async def test_open_room_errors(client, reporter, report):
    _, headers = reporter
    r = await client.post("/api/v1/chat/room", json={"reportId": "missing"}, headers=headers)
    assert r.status_code == 404

    other = (await client.post("/api/v1/auth/anonymous")).json()
    r = await client.post(
        "/api/v1/chat/room",
        json={"reportId": report["id"]},
        headers={"Authorization": f"Bearer {other['access_token']}"},
    )
    assert r.status_code == 403

    r = await client.post("/api/v1/chat/room", json={}, headers=headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_rooms_listing(client, reporter, room):
    _, headers = reporter
    r = await client.get("/api/v1/chat/rooms", headers=headers)
    assert [x["id"] for x in r.json()["rooms"]] == [room["id"]]


@pytest.mark.asyncio
async def test_post_and_read_messages(client, reporter, admin_headers, room):
    user, headers = reporter
    r = await client.post(f"/api/v1/chat/room/{room['id']}/message", json={"body": "Hello?"}, headers=headers)
    assert r.status_code == 201
    message = r.json()["message"]
    assert message["sender_id"] == user["id"]
    assert message["sender_role"] == "user"
    assert message["is_anonymous"] is True

    await client.post(f"/api/v1/chat/room/{room['id']}/message", json={"body": "We're here"}, headers=admin_headers)
    await client.post(f"/api/v1/chat/room/{room['id']}/message", json={"body": "Thanks"}, headers=headers)

    r = await client.get(f"/api/v1/chat/room/{room['id']}/messages", headers=admin_headers)
    assert [m["body"] for m in r.json()["messages"]] == ["Hello?", "We're here", "Thanks"]

    r = await client.get(
        f"/api/v1/chat/room/{room['id']}/messages?after={message['id']}&limit=1", headers=headers
    )
    assert [m["body"] for m in r.json()["messages"]] == ["We're here"]


@pytest.mark.asyncio
async def test_message_notifies_other_participant(client, reporter, admin_headers, room):
    _, headers = reporter
    await client.post(f"/api/v1/chat/room/{room['id']}/message", json={"body": "Any update?"}, headers=headers)

    notes = (await client.get("/api/v1/notifications", headers=admin_headers)).json()["notifications"]
    assert notes[0]["type"] == "chat"
    assert notes[0]["message"] == "New message from User: Any update?"
    assert (await client.get("/api/v1/notifications", headers=headers)).json()["notifications"] == []


@pytest.mark.asyncio
async def test_message_rules(client, reporter, admin_headers, admin2_headers, report, room):
    _, headers = reporter
    url = f"/api/v1/chat/room/{room['id']}/message"

    r = await client.post(url, json={"body": "   "}, headers=headers)
    assert r.status_code == 400

    r = await client.post(url, json={"body": "x" * 1001}, headers=headers)
    assert r.status_code == 400

    r = await client.post(url, json={"body": "Let me in"}, headers=admin2_headers)
    assert r.status_code == 403

    await client.patch(f"/api/v1/admin/reports/{report['id']}/status", json={"status": "closed"}, headers=admin_headers)
    r = await client.post(url, json={"body": "Still there?"}, headers=headers)
    assert r.status_code == 409
    assert r.json() == {"error": "chat_closed", "message": "Chat is closed for this report."}
