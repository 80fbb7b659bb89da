"""Shared test fixtures: one in-memory SQLite database for the durable store."""
from __future__ import annotations

import copy
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Use a shared in-memory DB with check_same_thread=False and StaticPool
# This ensures all connections see the same in-memory database.
from sqlalchemy.pool import StaticPool

from safereport.db.tables import Base

TEST_DB_URL = "sqlite+aiosqlite:///file:safereport_test?mode=memory&cache=shared&uri=true"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)

from safereport.api.main import app  # noqa: E402
from safereport.auth import create_access_token  # noqa: E402
from safereport.models import ReportSubmission  # noqa: E402
from safereport.realtime.hub import ConnectionHub  # noqa: E402
from safereport.services import KeywordClassifier, build_services  # noqa: E402
from safereport.store import MemoryStore, SqlStore, StoreSelector  # noqa: E402
from safereport.store.seed import seed_privileged_accounts  # noqa: E402

REPORT = {
    "title": "Broken window in library",
    "description": "The east window on the second floor was smashed overnight.",
    "category": "vandalism",
    "location": {
        "coordinates": [-122.2585, 37.8719],
        "address": "Main Library",
        "building": "Library",
        "floor": "2",
    },
}


class RecordingConnection:
    """Stands in for a WebSocket: keeps every frame it is sent."""

    def __init__(self, fail: bool = False):
        self.frames: list[dict] = []
        self.fail = fail

    async def send_json(self, frame: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(frame)

    def events(self) -> list[str]:
        return [f["event"] for f in self.frames]


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)['access_token']}"}


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sql_store():
    return SqlStore(TestSession)


@pytest.fixture(params=["memory", "durable"])
def store(request):
    """Runs the test once per backend; both must behave the same."""
    if request.param == "memory":
        return MemoryStore()
    return SqlStore(TestSession)


@pytest_asyncio.fixture
async def actors(store):
    await seed_privileged_accounts(store)
    return SimpleNamespace(
        reporter=await store.create_user("anon-reporter"),
        bystander=await store.create_user("anon-bystander"),
        admin=await store.get_user("admin-001"),
        admin2=await store.get_user("admin-002"),
        moderator=await store.get_user("moderator-001"),
    )


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def services(store, hub):
    return build_services(store, hub, KeywordClassifier())


@pytest_asyncio.fixture
async def app_state():
    """Fresh per-test app state: durable store on the test DB, memory fallback."""
    memory = MemoryStore()
    selector = StoreSelector(SqlStore(TestSession), memory, mode="auto", probe_timeout=2.0)
    app.state.memory_store = memory
    app.state.store_selector = selector
    app.state.hub = ConnectionHub()
    await seed_privileged_accounts(selector.durable)
    return app.state


@pytest_asyncio.fixture
async def client(app_state):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_headers(app_state):
    return bearer(await app_state.store_selector.durable.get_user("admin-001"))


@pytest_asyncio.fixture
async def admin2_headers(app_state):
    return bearer(await app_state.store_selector.durable.get_user("admin-002"))


@pytest_asyncio.fixture
async def moderator_headers(app_state):
    return bearer(await app_state.store_selector.durable.get_user("moderator-001"))


@pytest_asyncio.fixture
async def reporter(client):
    """Anonymous reporter signed in over HTTP: (user dict, headers)."""
    r = await client.post("/api/v1/auth/anonymous")
    assert r.status_code == 201, r.text
    data = r.json()
    return data["user"], {"Authorization": f"Bearer {data['access_token']}"}


@pytest.fixture
def report_payload():
    return copy.deepcopy(REPORT)


@pytest.fixture
def submission():
    """Factory for validated report submissions."""
    def make(**overrides) -> ReportSubmission:
        return ReportSubmission.model_validate({**copy.deepcopy(REPORT), **overrides})
    return make


@pytest.fixture
def make_connection():
    return RecordingConnection


@pytest.fixture
def headers_for():
    return bearer
