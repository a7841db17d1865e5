from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from pawtrack.config import get_settings


ADMIN_USER = "walker"
ADMIN_PASSWORD = "good-dog"
API_TOKEN = "dashboard-token"


class FakeClock:
    """Deterministic clock that advances one second per reading unless told otherwise."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def reset_settings_env(monkeypatch):
    monkeypatch.setenv("PAWTRACK_ADMIN_USERNAME", ADMIN_USER)
    monkeypatch.setenv("PAWTRACK_ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("PAWTRACK_API_TOKEN", API_TOKEN)
    monkeypatch.setenv("PAWTRACK_SESSION_SECRET", "test-session-secret")
    monkeypatch.delenv("PAWTRACK_INGEST_TOKEN", raising=False)
    monkeypatch.delenv("PAWTRACK_ALLOW_ANONYMOUS_BEACONS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api():
    from pawtrack.main import create_app

    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def viewer(api):
    """Client logged into the dashboard through the session cookie."""

    resp = api.post("/api/login", json={"username": ADMIN_USER, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return api


def token_headers() -> dict:
    return {"Authorization": f"Bearer {API_TOKEN}"}
