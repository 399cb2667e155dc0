from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from notes_api.db import SQLiteDatabase, SQLiteNoteRepository, SQLitePrincipalRepository
from notes_api.main import create_app
from notes_api.repositories import InMemoryNoteRepository, InMemoryPrincipalRepository
from notes_api.settings import Settings

T0 = datetime(2026, 10, 18, 9, 0, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> Settings:
    base = Settings(
        environment="development",
        persistence_backend="memory",
        sqlite_db_path="./data/test-notes.db",
        session_key="test-session-key",
        session_cookie="auth",
        session_https_only=False,
        timezone="UTC",
        store_timeout=5.0,
        login_url="",
        log_level="INFO",
        log_format="console",
    )
    return replace(base, **overrides)


class FakeClock:
    """Deterministic clock for created_at assertions."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def note_store(request, tmp_path, clock):
    if request.param == "sqlite":
        database = SQLiteDatabase(str(tmp_path / "notes.db"))
        return SQLiteNoteRepository(database, clock=clock)
    return InMemoryNoteRepository(clock=clock)


@pytest.fixture(params=["memory", "sqlite"])
def principal_store(request, tmp_path):
    if request.param == "sqlite":
        return SQLitePrincipalRepository(SQLiteDatabase(str(tmp_path / "principals.db")))
    return InMemoryPrincipalRepository()


def login(client: TestClient, sub: str = "auth0|alice", name: str = "Alice"):
    return client.get("/callback", params={"sub": sub, "name": name}, follow_redirects=False)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings):
    return create_app(settings, configure_logs=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def authed_client(client):
    res = login(client)
    assert res.status_code == 303
    return client
