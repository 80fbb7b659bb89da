"""Admin triage and moderator review over HTTP."""
from __future__ import annotations

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def report(client, reporter, report_payload):
    _, headers = reporter
    r = await client.post("/api/v1/reports", json=report_payload, headers=headers)
    return r.json()["report"]


@pytest.mark.asyncio
async def test_admin_routes_need_privileges(client, reporter, report):
    _, headers = reporter
    r = await client.get("/api/v1/admin/reports", headers=headers)
    assert r.status_code == 403
    assert r.json() == {"error": "access_denied", "message": "Access denied. Admin privileges required."}

    r = await client.patch(f"/api/v1/admin/reports/{report['id']}/status", json={"status": "resolved"}, headers=headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_sees_all_reports(client, admin_headers, report):
    r = await client.get("/api/v1/admin/reports", headers=admin_headers)
    assert r.status_code == 200
    assert [x["id"] for x in r.json()["reports"]] == [report["id"]]

    r = await client.get("/api/v1/admin/reports?status=resolved", headers=admin_headers)
    assert r.json()["total"] == 0


@pytest.mark.asyncio
async def test_status_update_notifies_reporter(client, reporter, admin_headers, report):
    _, headers = reporter
    r = await client.patch(
        f"/api/v1/admin/reports/{report['id']}/status", json={"status": "investigating"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["report"]["status"] == "investigating"

    notes = (await client.get("/api/v1/notifications", headers=headers)).json()["notifications"]
    assert notes[0]["type"] == "status"
    assert notes[0]["link"] == f"/reports/{report['id']}"


@pytest.mark.asyncio
async def test_invalid_status_is_400(client, admin_headers, report):
    r = await client.patch(
        f"/api/v1/admin/reports/{report['id']}/status", json={"status": "archived"}, headers=admin_headers
    )
    assert r.status_code == 400
    assert r.json() == {"error": "validation_error", "message": "Invalid status"}


@pytest.mark.asyncio
async def test_assign_is_exclusive(client, admin_headers, admin2_headers, report):
    url = f"/api/v1/admin/reports/{report['id']}/assign"
    r = await client.post(url, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["report"]["assigned_to"] == "admin-001"

    r = await client.post(url, headers=admin2_headers)
    assert r.status_code == 409
    assert r.json()["error"] == "already_assigned"

    r = await client.post(url, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["message"] == "Report is already assigned to you"


@pytest.mark.asyncio
async def test_notes_and_updates(client, reporter, admin_headers, report):
    _, headers = reporter
    r = await client.post(
        f"/api/v1/admin/reports/{report['id']}/note", json={"note": "Facilities ticket #881"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["report"]["private_notes"][0]["added_by"] == "admin-001"

    r = await client.post(
        f"/api/v1/admin/reports/{report['id']}/update", json={"message": "Glass replaced"}, headers=admin_headers
    )
    assert r.json()["report"]["public_updates"][0]["message"] == "Glass replaced"

    mine = (await client.get(f"/api/v1/reports/{report['id']}", headers=headers)).json()["report"]
    assert mine["private_notes"] == []
    assert mine["public_updates"][0]["message"] == "Glass replaced"

    r = await client.post(
        f"/api/v1/admin/reports/{report['id']}/note", json={"note": "  "}, headers=admin_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_stats(client, admin_headers, report):
    await client.patch(f"/api/v1/admin/reports/{report['id']}/status", json={"status": "resolved"}, headers=admin_headers)
    r = await client.get("/api/v1/admin/stats", headers=admin_headers)
    assert r.status_code == 200
    stats = r.json()["stats"]
    assert stats["total_reports"] == 1
    assert stats["resolved_reports"] == 1
    assert stats["pending_reports"] == 0
    assert stats["recent_reports"] == 1
    assert stats["resolution_rate"] == 100.0


@pytest.mark.asyncio
async def test_admin_request_review_flow(client, reporter, admin_headers, moderator_headers):
    user, headers = reporter
    r = await client.post("/api/v1/auth/request-admin", json={
        "reason": "Night patrol coordinator",
        "role": "Patrol lead",
        "department": "Campus Safety",
        "experience": "Three years",
        "responsibilities": "Overnight triage",
        "urgency": "high",
    }, headers=headers)
    request_id = r.json()["request"]["id"]

    r = await client.get("/api/v1/admin/requests", headers=admin_headers)
    assert r.status_code == 403

    r = await client.get("/api/v1/admin/requests?status=pending", headers=moderator_headers)
    requests = r.json()["requests"]
    assert [x["id"] for x in requests] == [request_id]
    assert requests[0]["requester"]["anonymous_id"] == user["anonymous_id"]

    r = await client.post(
        f"/api/v1/admin/requests/{request_id}/approve", json={"notes": "Approved"}, headers=moderator_headers
    )
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "approved"

    me = (await client.get("/api/v1/auth/me", headers=headers)).json()["user"]
    assert me["role"] == "admin"
    r = await client.get("/api/v1/admin/reports", headers=headers)
    assert r.status_code == 200

    r = await client.post(f"/api/v1/admin/requests/{request_id}/reject", headers=moderator_headers)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_dashboard(client, admin_headers, report):
    r = await client.get("/api/v1/admin/dashboard", headers=admin_headers)
    assert r.status_code == 200
    dashboard = r.json()["dashboard"]
    assert dashboard["total_reports"] == 1
    assert dashboard["pending_reports"] == 1
    assert dashboard["category_stats"] == [{"category": "vandalism", "count": 1}]
    assert [x["id"] for x in dashboard["recent_reports"]] == [report["id"]]

    r = await client.get(
        "/api/v1/admin/dashboard",
        params={"start_date": "2020-01-01T00:00:00", "end_date": "2020-01-31T00:00:00"},
        headers=admin_headers,
    )
    assert r.json()["dashboard"]["total_reports"] == 0
    assert r.json()["dashboard"]["start"].startswith("2020-01-01T00:00:00")


@pytest.mark.asyncio
async def test_dashboard_backwards_window_is_400(client, admin_headers):
    r = await client.get(
        "/api/v1/admin/dashboard",
        params={"start_date": "2026-02-01T00:00:00Z", "end_date": "2026-01-01T00:00:00Z"},
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_analytics(client, admin_headers, report):
    await client.patch(f"/api/v1/admin/reports/{report['id']}/status", json={"status": "resolved"}, headers=admin_headers)
    r = await client.get("/api/v1/admin/analytics", headers=admin_headers)
    assert r.status_code == 200
    analytics = r.json()["analytics"]
    assert sum(day["count"] for day in analytics["daily_trend"]) == 1
    assert analytics["category_distribution"][0]["category"] == "vandalism"
    assert analytics["resolution_time"]["min_hours"] >= 0


@pytest.mark.asyncio
async def test_user_stats(client, reporter, admin_headers, report):
    r = await client.get("/api/v1/admin/users", headers=admin_headers)
    assert r.status_code == 200
    users = r.json()["users"]
    assert users["active"] == 1
    assert users["anonymous"] >= 1
    assert users["total"] == users["anonymous"] + users["registered"]

    _, headers = reporter
    assert (await client.get("/api/v1/admin/users", headers=headers)).status_code == 403


@pytest.mark.asyncio
async def test_heatmap_data(client, reporter, admin_headers, report):
    r = await client.get("/api/v1/reports/heatmap/data", headers=admin_headers)
    assert r.status_code == 200
    points = r.json()["heatmap_data"]
    assert points == [{
        "coordinates": [-122.2585, 37.8719],
        "category": "vandalism",
        "priority": report["priority"],
        "created_at": points[0]["created_at"],
    }]

    r = await client.get("/api/v1/reports/heatmap/data", params={"categories": "theft"}, headers=admin_headers)
    assert r.json()["heatmap_data"] == []

    _, headers = reporter
    r = await client.get("/api/v1/reports/heatmap/data", headers=headers)
    assert r.status_code == 403
