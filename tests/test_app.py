from __future__ import annotations

from tests.conftest import ADMIN_PASSWORD, ADMIN_USER, token_headers


def _register(api, device_id: str = "dev1", name: str | None = None):
    body = {"deviceId": device_id}
    if name:
        body["deviceName"] = name
    resp = api.post("/api/device/register", json=body)
    assert resp.status_code == 200
    return resp.json()


def _beacon(api, device_id: str = "dev1", tracker_id: str = "b1", station=None, **fields):
    beacon = {
        "trackerId": tracker_id,
        "latitude": 37.0,
        "longitude": -122.0,
        "hdop": 1.2,
        "sats": 8,
        "batteryVoltage": 3.9,
        "rssi": -90,
        "snr": 6.5,
        "speed": 2.0,
        "altitude": 15.0,
        "ledOn": False,
        "buzzerOn": False,
    }
    beacon.update(fields)
    body = {"deviceId": device_id, "beaconData": beacon}
    if station is not None:
        body["stationLocation"] = station
    return api.post("/api/device/beacon", json=body)


def test_healthz(api):
    assert api.get("/healthz").json() == {"status": "ok"}


def test_register_returns_device_id(api):
    assert _register(api, "dev1") == {"success": True, "deviceId": "dev1"}


def test_register_requires_device_id(api):
    resp = api.post("/api/device/register", json={"deviceName": "Porch"})
    assert resp.status_code == 400
    assert "deviceId" in resp.json()["error"]

    resp = api.post("/api/device/register", json={"deviceId": ""})
    assert resp.status_code == 400


def test_beacon_for_unregistered_device_is_404(api, viewer):
    resp = _beacon(api, "ghost")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Device not registered"}
    assert viewer.get("/api/devices").json() == {"devices": []}


def test_beacon_requires_beacon_data(api):
    _register(api)
    resp = api.post("/api/device/beacon", json={"deviceId": "dev1"})
    assert resp.status_code == 400
    assert "beaconData" in resp.json()["error"]


def test_beacon_without_tracker_id_is_rejected(api, viewer):
    _register(api)
    resp = api.post("/api/device/beacon", json={"deviceId": "dev1", "beaconData": {"latitude": 1.0}})
    assert resp.status_code == 400
    assert "trackerId" in resp.json()["error"]
    assert viewer.get("/api/devices").json()["devices"][0]["beacons"] == []


def test_device_list_scenario(api, viewer):
    _register(api, "dev1")
    assert _beacon(api).json() == {"success": True}

    devices = viewer.get("/api/devices").json()["devices"]
    assert len(devices) == 1
    device = devices[0]
    assert device["id"] == "dev1"
    assert device["name"] == "Station dev1"
    assert device["beaconCount"] == 1
    beacon = device["beacons"][0]
    assert beacon["id"] == "b1"
    assert beacon["name"] == "Beacon b1"
    assert beacon["location"]["latitude"] == 37.0
    assert beacon["location"]["batteryVoltage"] == 3.9
    assert beacon["location"]["speed"] == 2.0
    assert beacon["historyCount"] == 1
    assert beacon["online"] is True
    assert beacon["disconnected"] is False

    for idx in range(1001):
        _beacon(api, latitude=float(idx))

    history = viewer.get("/api/device/dev1/beacon/b1/history").json()
    assert history["totalPoints"] == 1000
    assert len(history["history"]) == 1000
    latitudes = [point["latitude"] for point in history["history"]]
    assert 37.0 not in latitudes
    assert latitudes[0] == 1.0
    assert latitudes[-1] == 1000.0


def test_history_limit_and_unknown_beacon(api, viewer):
    _register(api)
    for idx in range(5):
        _beacon(api, speed=float(idx))

    body = viewer.get("/api/device/dev1/beacon/b1/history", params={"limit": 2}).json()
    assert body["beaconName"] == "Beacon b1"
    assert [point["speed"] for point in body["history"]] == [3.0, 4.0]
    assert body["totalPoints"] == 5

    for raw in ("abc", "0", "-3", ""):
        fallback = viewer.get("/api/device/dev1/beacon/b1/history", params={"limit": raw})
        assert fallback.status_code == 200
        assert len(fallback.json()["history"]) == 5

    resp = viewer.get("/api/device/dev1/beacon/nope/history")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Beacon not found"}


def test_missing_fields_are_zero_defaulted(api, viewer):
    _register(api)
    api.post("/api/device/beacon", json={"deviceId": "dev1", "beaconData": {"trackerId": "b1", "latitude": 5.0}})

    location = viewer.get("/api/device/dev1/beacons").json()["beacons"][0]["location"]
    assert location["latitude"] == 5.0
    assert location["longitude"] == 0
    assert location["batteryVoltage"] == 0
    assert location["ledOn"] is False


def test_station_data_snapshot(api, viewer):
    _register(api)
    _beacon(
        api,
        station={"latitude": 37.1, "longitude": -122.1, "hdop": 0.9, "sats": 11, "altitude": 20, "hasValidFix": True},
        batteryVoltage=4.05,
    )

    data = viewer.get("/api/station/dev1/data").json()
    beacon = data["beacons"][0]
    assert beacon["id"] == "b1"
    assert beacon["battery"] == 4.05
    assert beacon["hasData"] is True
    assert beacon["connected"] is True
    assert beacon["lastUpdate"] > 0
    assert data["station"]["hasValidFix"] is True
    assert data["station"]["latitude"] == 37.1
    assert data["station"]["sats"] == 11
    assert data["config"]["disconnectTimeout"] == 60
    assert data["serverTime"] >= beacon["lastUpdate"]


def test_station_data_without_fix(api, viewer):
    _register(api)
    data = viewer.get("/api/station/dev1/data").json()
    assert data["beacons"] == []
    assert data["station"]["hasValidFix"] is False
    assert data["station"]["latitude"] == 0


def test_station_history_merges_beacons(api, viewer):
    _register(api)
    _beacon(api, tracker_id="b1", speed=1.0)
    _beacon(api, tracker_id="b2", speed=2.0)
    _beacon(api, tracker_id="b1", speed=3.0)

    body = viewer.get("/api/station/dev1/history").json()
    assert body["totalPoints"] == 3
    assert [point["beaconId"] for point in body["history"]] == ["b1", "b2", "b1"]
    timestamps = [point["timestamp"] for point in body["history"]]
    assert timestamps == sorted(timestamps)
    assert body["timeRange"] != "No data"


def test_tracker_history_across_devices(api, viewer):
    _register(api, "dev1")
    _register(api, "dev2")
    _beacon(api, "dev1", "rex", latitude=1.0)
    _beacon(api, "dev2", "rex", latitude=2.0)

    body = viewer.get("/api/tracker/rex/history").json()
    assert body["trackerId"] == "rex"
    assert [(p["deviceId"], p["latitude"]) for p in body["history"]] == [("dev1", 1.0), ("dev2", 2.0)]


def test_control_round_trip(api, viewer):
    _register(api)
    assert api.get("/api/device/dev1/control").json() == {"hasCommand": False}

    assert viewer.post("/api/device/dev1/control", json={"ledOn": True, "buzzerOn": False}).status_code == 200
    assert viewer.post("/api/device/dev1/control", json={"ledOn": False, "buzzerOn": True}).status_code == 200

    assert api.get("/api/device/dev1/control").json() == {"hasCommand": True, "ledOn": False, "buzzerOn": True}
    assert api.get("/api/device/dev1/control").json() == {"hasCommand": False}

    ack = api.post("/api/device/control-status", json={"deviceId": "dev1", "ledOn": False, "buzzerOn": True})
    assert ack.json() == {"success": True}
    device = viewer.get("/api/devices").json()["devices"][0]
    assert device["controlState"]["buzzerOn"] is True


def test_control_for_unknown_device(api, viewer):
    assert api.get("/api/device/ghost/control").json() == {"hasCommand": False}
    assert viewer.post("/api/device/ghost/control", json={"ledOn": True, "buzzerOn": True}).status_code == 404
    resp = api.post("/api/device/control-status", json={"deviceId": "ghost", "ledOn": True, "buzzerOn": True})
    assert resp.status_code == 404


def test_dashboard_requires_auth(api):
    assert api.get("/api/devices").status_code == 401
    assert api.get("/api/devices").json() == {"error": "Unauthorized"}
    assert api.post("/api/device/dev1/control", json={"ledOn": True, "buzzerOn": True}).status_code == 401


def test_api_token_grants_dashboard_access(api):
    assert api.get("/api/devices", headers=token_headers()).status_code == 200
    assert api.get("/api/devices", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_login_logout_cycle(api):
    assert api.get("/api/auth/check").json() == {"authenticated": False}
    assert api.post("/api/login", json={"username": ADMIN_USER}).status_code == 400
    assert api.post("/api/login", json={"username": ADMIN_USER, "password": "nope"}).status_code == 401

    resp = api.post("/api/login", json={"username": ADMIN_USER, "password": ADMIN_PASSWORD})
    assert resp.json() == {"success": True, "username": ADMIN_USER}
    assert api.get("/api/auth/check").json() == {"authenticated": True, "username": ADMIN_USER}
    assert api.get("/api/devices").status_code == 200

    assert api.post("/api/logout").json() == {"success": True}
    assert api.get("/api/devices").status_code == 401


def test_status_reports_store_counts(api):
    _register(api)
    _beacon(api)
    body = api.get("/v1/status").json()
    assert body["devices"] == 1
    assert body["beacons"] == 1
    assert body["history_points"] == 1
    assert body["history_capacity"] == 1000
    assert body["viewers"] == 0


def test_request_id_header_is_echoed(api):
    resp = api.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
