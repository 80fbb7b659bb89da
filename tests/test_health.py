"""Health and readiness, including the memory fallback."""
from __future__ import annotations

import pytest

from safereport import __version__
from safereport.errors import Unavailable
from safereport.store import MemoryStore, StoreSelector


class DownStore(MemoryStore):
    name = "durable"

    async def ping(self) -> None:
        raise Unavailable("connection refused")


@pytest.mark.asyncio
async def test_health_reports_durable_backend(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "backend": "durable", "connections": 0, "version": __version__}


@pytest.mark.asyncio
async def test_ready(client):
    r = await client.get("/ready")
    assert r.status_code == 200
    assert r.json() == {"ready": True, "backend": "durable"}


@pytest.mark.asyncio
async def test_falls_back_to_memory_when_durable_down(client, app_state, report_payload):
    memory = app_state.memory_store
    app_state.store_selector = StoreSelector(DownStore(seed=False), memory, mode="auto")

    r = await client.get("/health")
    assert r.json()["status"] == "degraded"
    assert r.json()["backend"] == "memory"

    r = await client.get("/ready")
    assert r.status_code == 200
    assert r.json()["backend"] == "memory"

    # The API keeps serving from memory
    login = (await client.post("/api/v1/auth/anonymous")).json()
    headers = {"Authorization": f"Bearer {login['access_token']}"}
    r = await client.post("/api/v1/reports", json=report_payload, headers=headers)
    assert r.status_code == 201
    assert await memory.get_report(r.json()["report"]["id"]) is not None


@pytest.mark.asyncio
async def test_durable_session_survives_fallback(client, app_state, reporter):
    """A user created in the durable store still authenticates from token claims."""
    _, headers = reporter
    app_state.store_selector = StoreSelector(DownStore(seed=False), app_state.memory_store, mode="auto")
    r = await client.get("/api/v1/auth/me", headers=headers)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_not_ready_when_pinned_durable_is_down(client, app_state):
    app_state.store_selector = StoreSelector(DownStore(seed=False), app_state.memory_store, mode="durable")
    r = await client.get("/ready")
    assert r.status_code == 503
    assert r.json()["ready"] is False
