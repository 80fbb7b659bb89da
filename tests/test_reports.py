"""Reporter-facing report endpoints."""
from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_submit_report(client, reporter, report_payload):
    user, headers = reporter
    r = await client.post("/api/v1/reports", json=report_payload, headers=headers)
    assert r.status_code == 201, r.text
    report = r.json()["report"]
    assert report["reporter_id"] == user["id"]
    assert report["status"] == "pending"
    assert report["category"] == "vandalism"
    assert report["is_anonymous"] is True
    assert report["incident_time"] is not None
    assert "private_notes" not in report


@pytest.mark.asyncio
async def test_submit_classifies(client, reporter, report_payload):
    _, headers = reporter
    report_payload["description"] = "Someone attacked a student near the gym, it was urgent"
    r = await client.post("/api/v1/reports", json=report_payload, headers=headers)
    report = r.json()["report"]
    assert report["ai_category"] == "assault"
    assert report["priority"] == "critical"
    assert report["sentiment"] == "distressed"


@pytest.mark.asyncio
async def test_submit_requires_auth(client, report_payload):
    r = await client.post("/api/v1/reports", json=report_payload)
    assert r.status_code == 401
    assert r.json()["error"] == "unauthenticated"


@pytest.mark.asyncio
@pytest.mark.parametrize("override", [
    {"title": "Hey"},
    {"description": "short"},
    {"category": "littering"},
    {"location": {"coordinates": [1.0]}},
])
async def test_submit_rejects_bad_input(client, reporter, report_payload, override):
    _, headers = reporter
    r = await client.post("/api/v1/reports", json={**report_payload, **override}, headers=headers)
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_list_only_own_reports(client, reporter, report_payload):
    _, headers = reporter
    other = (await client.post("/api/v1/auth/anonymous")).json()
    other_headers = {"Authorization": f"Bearer {other['access_token']}"}

    await client.post("/api/v1/reports", json=report_payload, headers=headers)
    await client.post("/api/v1/reports", json=report_payload, headers=headers)
    await client.post("/api/v1/reports", json=report_payload, headers=other_headers)

    r = await client.get("/api/v1/reports", headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert data["skip"] == 0
    assert data["limit"] == 20
    assert len(data["reports"]) == 2


@pytest.mark.asyncio
async def test_list_filters_and_paginates(client, reporter, report_payload):
    _, headers = reporter
    for _ in range(3):
        await client.post("/api/v1/reports", json=report_payload, headers=headers)
    await client.post("/api/v1/reports", json={**report_payload, "category": "theft"}, headers=headers)

    r = await client.get("/api/v1/reports?category=theft", headers=headers)
    assert r.json()["total"] == 1

    r = await client.get("/api/v1/reports?limit=2&skip=2", headers=headers)
    data = r.json()
    assert data["total"] == 4
    assert len(data["reports"]) == 2

    r = await client.get("/api/v1/reports?limit=500", headers=headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_get_report_owner_only(client, reporter, report_payload):
    _, headers = reporter
    report = (await client.post("/api/v1/reports", json=report_payload, headers=headers)).json()["report"]

    r = await client.get(f"/api/v1/reports/{report['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["report"]["private_notes"] == []

    other = (await client.post("/api/v1/auth/anonymous")).json()
    r = await client.get(
        f"/api/v1/reports/{report['id']}",
        headers={"Authorization": f"Bearer {other['access_token']}"},
    )
    assert r.status_code == 403

    r = await client.get("/api/v1/reports/does-not-exist", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_edit_report(client, reporter, report_payload):
    _, headers = reporter
    report_payload["attachments"] = [{"filename": "window.jpg", "mimetype": "image/jpeg", "size": 2048}]
    report = (await client.post("/api/v1/reports", json=report_payload, headers=headers)).json()["report"]

    r = await client.put(f"/api/v1/reports/{report['id']}", json={
        "title": "Broken window, east wing",
        "description": "Two windows on the east side were smashed overnight.",
        "category": "vandalism",
    }, headers=headers)
    assert r.status_code == 200
    edited = r.json()["report"]
    assert edited["title"] == "Broken window, east wing"
    assert edited["location"]["building"] == "Library"
    assert [a["filename"] for a in edited["attachments"]] == ["window.jpg"]


@pytest.mark.asyncio
async def test_edit_someone_elses_report(client, reporter, admin_headers, report_payload):
    _, headers = reporter
    report = (await client.post("/api/v1/reports", json=report_payload, headers=headers)).json()["report"]
    r = await client.put(f"/api/v1/reports/{report['id']}", json={
        "title": "Admin rewrite",
        "description": "Admins cannot rewrite the reporter's words.",
        "category": "other",
    }, headers=admin_headers)
    assert r.status_code == 403
    assert r.json()["message"] == "You can only edit your own reports"
