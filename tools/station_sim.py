#!/usr/bin/env python3
"""Simulated stations that relay wandering beacons to a running pawtrack server.

Configuration comes from the environment:
  PAWTRACK_URL                   server base URL (default http://127.0.0.1:3000)
  PAWTRACK_INGEST_TOKEN          bearer token when the server requires one
  STATION_SIM_STATION_IDS        comma separated station ids
  STATION_SIM_STATION_COUNT      number of stations when no ids are given (default 1)
  STATION_SIM_BEACONS            beacons per station (default 2)
  STATION_SIM_INTERVAL           seconds between report rounds (default 5)
  STATION_SIM_HOME               "lat,lon" home point (default 37.0,-122.0)
  STATION_SIM_SEED               RNG seed (default 42)
"""
from __future__ import annotations

import math
import os
import random
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import httpx

METERS_PER_DEGREE = 111_320.0


@dataclass
class SimBeacon:
    tracker_id: str
    latitude: float
    longitude: float
    heading: float
    battery_voltage: float = 4.1
    led_on: bool = False
    buzzer_on: bool = False


@dataclass
class SimStation:
    device_id: str
    home: Tuple[float, float]
    beacons: List[SimBeacon] = field(default_factory=list)


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_list(key: str) -> List[str]:
    value = os.getenv(key, "")
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def _env_home() -> Tuple[float, float]:
    raw = os.getenv("STATION_SIM_HOME", "")
    try:
        lat, lon = (float(part) for part in raw.split(","))
        return lat, lon
    except ValueError:
        return 37.0, -122.0


def build_stations(seed: int, home: Tuple[float, float]) -> List[SimStation]:
    rng = random.Random(seed)
    station_ids = _env_list("STATION_SIM_STATION_IDS")
    if not station_ids:
        count = max(_env_int("STATION_SIM_STATION_COUNT", 1), 1)
        station_ids = [f"sim-station-{idx + 1}" for idx in range(count)]
    beacon_count = max(_env_int("STATION_SIM_BEACONS", 2), 1)

    stations: List[SimStation] = []
    for station_id in station_ids:
        station = SimStation(device_id=station_id, home=home)
        for idx in range(beacon_count):
            station.beacons.append(
                SimBeacon(
                    tracker_id=f"{station_id}-dog-{idx + 1}",
                    latitude=home[0] + rng.uniform(-0.0005, 0.0005),
                    longitude=home[1] + rng.uniform(-0.0005, 0.0005),
                    heading=rng.uniform(0, math.tau),
                )
            )
        stations.append(station)
    return stations


def step_beacon(beacon: SimBeacon, home: Tuple[float, float], rng: random.Random, dt: float) -> float:
    """Random walk that drifts back toward home; returns the speed in m/s."""

    speed = max(0.0, rng.gauss(1.5, 0.8))
    beacon.heading += rng.uniform(-0.6, 0.6)
    to_home = math.atan2(home[0] - beacon.latitude, home[1] - beacon.longitude)
    distance = math.hypot(home[0] - beacon.latitude, home[1] - beacon.longitude) * METERS_PER_DEGREE
    if distance > 150.0:
        beacon.heading = to_home
    meters = speed * dt
    beacon.latitude += math.sin(beacon.heading) * meters / METERS_PER_DEGREE
    beacon.longitude += math.cos(beacon.heading) * meters / (
        METERS_PER_DEGREE * max(math.cos(math.radians(beacon.latitude)), 0.01)
    )
    beacon.battery_voltage = max(3.3, beacon.battery_voltage - rng.uniform(0.0, 0.0005))
    return speed


def beacon_payload(station: SimStation, beacon: SimBeacon, speed: float, rng: random.Random) -> Dict[str, object]:
    return {
        "deviceId": station.device_id,
        "beaconData": {
            "trackerId": beacon.tracker_id,
            "latitude": round(beacon.latitude, 7),
            "longitude": round(beacon.longitude, 7),
            "hdop": round(rng.uniform(0.7, 2.5), 2),
            "sats": rng.randint(5, 12),
            "batteryVoltage": round(beacon.battery_voltage, 3),
            "rssi": rng.randint(-120, -60),
            "snr": round(rng.uniform(-5.0, 10.0), 1),
            "speed": round(speed * 3.6, 2),
            "altitude": round(rng.uniform(20.0, 30.0), 1),
            "ledOn": beacon.led_on,
            "buzzerOn": beacon.buzzer_on,
        },
        "stationLocation": {
            "latitude": station.home[0],
            "longitude": station.home[1],
            "hdop": 0.9,
            "sats": 10,
            "altitude": 25.0,
            "hasValidFix": True,
        },
    }


def apply_command(client: httpx.Client, station: SimStation) -> Optional[Dict[str, object]]:
    resp = client.get(f"/api/device/{station.device_id}/control")
    resp.raise_for_status()
    command = resp.json()
    if not command.get("hasCommand"):
        return None
    led_on = bool(command.get("ledOn"))
    buzzer_on = bool(command.get("buzzerOn"))
    for beacon in station.beacons:
        beacon.led_on = led_on
        beacon.buzzer_on = buzzer_on
    client.post(
        "/api/device/control-status",
        json={"deviceId": station.device_id, "ledOn": led_on, "buzzerOn": buzzer_on},
    ).raise_for_status()
    return command


def main() -> None:
    base_url = os.getenv("PAWTRACK_URL", "http://127.0.0.1:3000")
    token = os.getenv("PAWTRACK_INGEST_TOKEN")
    interval = _env_float("STATION_SIM_INTERVAL", 5.0)
    seed = _env_int("STATION_SIM_SEED", 42)
    rng = random.Random(seed)
    stations = build_stations(seed, _env_home())
    headers = {"Authorization": f"Bearer {token}"} if token else {}

    with httpx.Client(base_url=base_url, headers=headers, timeout=httpx.Timeout(5.0)) as client:
        while True:
            try:
                for station in stations:
                    client.post(
                        "/api/device/register",
                        json={"deviceId": station.device_id, "deviceName": f"Sim {station.device_id}"},
                    ).raise_for_status()
                break
            except httpx.HTTPError as exc:
                print(f"[station-sim] register failed: {exc}")
                time.sleep(2)
        print(f"[station-sim] {len(stations)} station(s) registered at {base_url}")

        last = time.monotonic()
        try:
            while True:
                now = time.monotonic()
                dt = now - last
                last = now
                for station in stations:
                    try:
                        command = apply_command(client, station)
                        if command:
                            print(f"[station-sim] {station.device_id} applied {command}")
                        for beacon in station.beacons:
                            speed = step_beacon(beacon, station.home, rng, dt)
                            client.post(
                                "/api/device/beacon", json=beacon_payload(station, beacon, speed, rng)
                            ).raise_for_status()
                    except httpx.HTTPError as exc:
                        print(f"[station-sim] {station.device_id} report failed: {exc}")
                time.sleep(interval)
        except KeyboardInterrupt:
            print("[station-sim] shutting down")


if __name__ == "__main__":
    main()
