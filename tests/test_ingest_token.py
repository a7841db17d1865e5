from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from pawtrack.config import get_settings


@pytest.fixture
def guarded_api(monkeypatch):
    monkeypatch.setenv("PAWTRACK_INGEST_TOKEN", "station-secret")
    get_settings.cache_clear()
    from pawtrack.main import create_app

    with TestClient(create_app()) as client:
        yield client


def test_station_endpoints_require_ingest_token(guarded_api):
    resp = guarded_api.post("/api/device/register", json={"deviceId": "dev1"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing bearer token"}

    resp = guarded_api.post(
        "/api/device/register",
        json={"deviceId": "dev1"},
        headers={"Authorization": "Bearer wrong"},
    )
    assert resp.status_code == 403


def test_station_endpoints_accept_ingest_token(guarded_api):
    headers = {"Authorization": "Bearer station-secret"}
    assert guarded_api.post("/api/device/register", json={"deviceId": "dev1"}, headers=headers).json() == {
        "success": True,
        "deviceId": "dev1",
    }
    assert guarded_api.get("/api/device/dev1/control", headers=headers).json() == {"hasCommand": False}
