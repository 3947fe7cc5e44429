import os
import uuid
from typing import Any

import pytest
import sqlalchemy as sa
from sqlalchemy import event
from httpx import ASGITransport, AsyncClient

# IMPORTANT:
# Set env vars BEFORE importing app.settings/app.main (pydantic settings load at import time)
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_social.db")
os.environ.setdefault("JWT_SECRET", "dev-test-secret")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:5173")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from app.main import app as fastapi_app  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base_class import Base  # noqa: E402
import app.db.base  # noqa: F401,E402  (register models)
from app.db.session import AsyncSessionLocal  # noqa: E402
from app.realtime.bus import EventBus  # noqa: E402


def _sync_url(url: str) -> str:
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg2")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_schema():
    # Sync engine so this works for both anyio and plain (TestClient) tests.
    engine = sa.create_engine(_sync_url(settings.database_url))
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    engine.dispose()
    yield


@pytest.fixture(autouse=True)
def bus():
    fresh = EventBus()
    fastapi_app.state.event_bus = fresh
    yield fresh


@pytest.fixture
async def db_session():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def commit_before_flush():
    """Commit a row from another connection just before ``session`` next flushes.

    Simulates a concurrent request winning the race between a service's
    read and its write.
    """

    def _arm(session, table, **values):
        def _insert(*_):
            engine = sa.create_engine(_sync_url(settings.database_url))
            with engine.begin() as conn:
                conn.execute(sa.insert(table).values(**values))
            engine.dispose()

        event.listen(session.sync_session, "before_flush", _insert, once=True)

    return _arm


@pytest.fixture
async def client():
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# --- Small helpers for the social graph tests ---

def _unique(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


@pytest.fixture
def unique_str():
    return _unique


def issue_token(user_id: uuid.UUID | str) -> str:
    return create_access_token(subject=str(user_id))


@pytest.fixture
def token_for():
    return issue_token


@pytest.fixture
def act_as():
    def _act(client: AsyncClient, user: dict | None):
        client.headers.pop("Authorization", None)
        if user:
            client.headers["Authorization"] = f"Bearer {user['token']}"

    return _act


@pytest.fixture
def user_factory(unique_str, act_as):
    async def _create(
        client: AsyncClient,
        *,
        username: str | None = None,
        display_name: str | None = None,
    ) -> dict[str, Any]:
        user_id = uuid.uuid4()
        token = issue_token(user_id)
        username = username or unique_str("user")
        display_name = display_name or username

        act_as(client, {"token": token})
        r = await client.put("/me", json={"username": username, "display_name": display_name})
        assert r.status_code == 200, r.text
        act_as(client, None)
        return {
            "id": str(user_id),
            "uuid": user_id,
            "username": username,
            "display_name": display_name,
            "token": token,
        }

    return _create


class FakeConnection:
    """Stands in for a live socket; records every frame delivered to it."""

    def __init__(self) -> None:
        self.frames: list[dict[str, Any]] = []

    def deliver(self, frame: dict[str, Any]) -> bool:
        self.frames.append(frame)
        return True

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        return [f["data"] for f in self.frames if name is None or f["event"] == name]


@pytest.fixture
def listen(bus):
    async def _listen(user: dict) -> FakeConnection:
        conn = FakeConnection()
        await bus.join(user["uuid"], conn)
        return conn

    return _listen
