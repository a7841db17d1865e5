"""Read-only JSON projections of store snapshots for the dashboards.

Missing telemetry is rendered as zero (or ``False``) instead of being
omitted, so every beacon has the same shape whether or not it has reported.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pawtrack.config import Settings
from pawtrack.services import staleness
from pawtrack.services.telemetry_store import (
    BeaconFix,
    BeaconSnapshot,
    ControlState,
    DeviceSnapshot,
    HistoryPoint,
    HistorySlice,
    StationFix,
    TrackedPoint,
)

_TELEMETRY_FIELDS = (
    ("latitude", "latitude"),
    ("longitude", "longitude"),
    ("hdop", "hdop"),
    ("sats", "sats"),
    ("batteryVoltage", "battery_voltage"),
    ("rssi", "rssi"),
    ("snr", "snr"),
    ("speed", "speed"),
    ("altitude", "altitude"),
)


def _or_zero(value: Any) -> Any:
    return 0 if value is None else value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def epoch_ms(value: Optional[datetime]) -> int:
    return int(value.timestamp() * 1000) if value else 0


def history_point_payload(point: Optional[HistoryPoint]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        key: _or_zero(getattr(point, attr, None)) for key, attr in _TELEMETRY_FIELDS
    }
    payload["timestamp"] = isoformat(point.timestamp) if point else None
    return payload


def location_payload(fix: Optional[BeaconFix]) -> Dict[str, Any]:
    payload = history_point_payload(fix)
    payload["ledOn"] = bool(fix.led_on) if fix else False
    payload["buzzerOn"] = bool(fix.buzzer_on) if fix else False
    return payload


def station_has_fix(fix: Optional[StationFix]) -> bool:
    """A reported station position counts as a fix unless it was flagged invalid."""

    return fix is not None and fix.has_valid_fix is not False


def station_location_payload(fix: Optional[StationFix]) -> Optional[Dict[str, Any]]:
    if fix is None:
        return None
    return {
        "latitude": _or_zero(fix.latitude),
        "longitude": _or_zero(fix.longitude),
        "hdop": _or_zero(fix.hdop),
        "sats": _or_zero(fix.sats),
        "altitude": _or_zero(fix.altitude),
        "hasValidFix": station_has_fix(fix),
        "timestamp": isoformat(fix.timestamp),
    }


def control_payload(state: Optional[ControlState]) -> Optional[Dict[str, Any]]:
    if state is None:
        return None
    return {"ledOn": state.led_on, "buzzerOn": state.buzzer_on, "timestamp": isoformat(state.timestamp)}


def beacon_summary(beacon: BeaconSnapshot, now: datetime, settings: Settings) -> Dict[str, Any]:
    connectivity = staleness.evaluate(beacon.last_seen if beacon.location else None, now, settings)
    return {
        "id": beacon.id,
        "name": beacon.name,
        "firstSeen": isoformat(beacon.first_seen),
        "lastSeen": isoformat(beacon.last_seen),
        "location": location_payload(beacon.location),
        "hasData": beacon.location is not None,
        "historyCount": beacon.history_count,
        **connectivity.as_dict(),
    }


def device_summary(device: DeviceSnapshot, now: datetime, settings: Settings) -> Dict[str, Any]:
    beacons = [beacon_summary(beacon, now, settings) for beacon in device.beacons]
    return {
        "id": device.id,
        "name": device.name,
        "registeredAt": isoformat(device.registered_at),
        "lastSeen": isoformat(device.last_seen),
        "controlState": control_payload(device.control_state),
        "stationLocation": station_location_payload(device.station_location),
        "beacons": beacons,
        "beaconCount": len(beacons),
        **staleness.evaluate(device.last_seen, now, settings).as_dict(),
    }


def device_list(devices: Sequence[DeviceSnapshot], now: datetime, settings: Settings) -> Dict[str, Any]:
    return {"devices": [device_summary(device, now, settings) for device in devices]}


def device_beacons(device: DeviceSnapshot, now: datetime, settings: Settings) -> Dict[str, Any]:
    return {
        "deviceId": device.id,
        "beacons": [beacon_summary(beacon, now, settings) for beacon in device.beacons],
    }


def beacon_history(history: HistorySlice) -> Dict[str, Any]:
    return {
        "deviceId": history.device_id,
        "beaconId": history.beacon_id,
        "beaconName": history.beacon_name,
        "history": [history_point_payload(point) for point in history.points],
        "totalPoints": history.total_points,
    }


def tracker_history(tracker_id: str, points: Sequence[TrackedPoint]) -> Dict[str, Any]:
    history = []
    for item in points:
        payload = history_point_payload(item.point)
        payload["deviceId"] = item.device_id
        history.append(payload)
    return {"trackerId": tracker_id, "history": history}


def station_data(device: DeviceSnapshot, now: datetime, settings: Settings) -> Dict[str, Any]:
    """Snapshot shaped like the station firmware's own ``/api/data`` response."""

    beacons: List[Dict[str, Any]] = []
    for beacon in device.beacons:
        fix = beacon.location
        beacons.append(
            {
                "id": beacon.id,
                "name": beacon.name,
                "latitude": _or_zero(fix.latitude if fix else None),
                "longitude": _or_zero(fix.longitude if fix else None),
                "hdop": _or_zero(fix.hdop if fix else None),
                "sats": _or_zero(fix.sats if fix else None),
                "battery": _or_zero(fix.battery_voltage if fix else None),
                "rssi": _or_zero(fix.rssi if fix else None),
                "snr": _or_zero(fix.snr if fix else None),
                "speed": _or_zero(fix.speed if fix else None),
                "altitude": _or_zero(fix.altitude if fix else None),
                "lastUpdate": epoch_ms(beacon.last_seen),
                "hasData": fix is not None,
                "connected": not staleness.is_stale(
                    beacon.last_seen if fix else None, now, settings.disconnect_timeout_seconds
                ),
            }
        )
    station = device.station_location
    return {
        "beacons": beacons,
        "station": {
            "hasValidFix": station_has_fix(station),
            "latitude": _or_zero(station.latitude if station else None),
            "longitude": _or_zero(station.longitude if station else None),
            "hdop": _or_zero(station.hdop if station else None),
            "sats": _or_zero(station.sats if station else None),
            "altitude": _or_zero(station.altitude if station else None),
            "lastUpdate": epoch_ms(device.last_seen),
        },
        "config": {
            "disconnectTimeout": settings.disconnect_timeout_seconds,
            "onlineThreshold": settings.online_threshold_seconds,
        },
        "serverTime": epoch_ms(now),
    }


def merged_history(device_id: str, points: Sequence[TrackedPoint]) -> Dict[str, Any]:
    history = [
        {
            "timestamp": item.point.timestamp.timestamp(),
            "beaconId": item.beacon_id,
            "latitude": _or_zero(item.point.latitude),
            "longitude": _or_zero(item.point.longitude),
            "speed": _or_zero(item.point.speed),
            "altitude": _or_zero(item.point.altitude),
            "battery": _or_zero(item.point.battery_voltage),
            "rssi": _or_zero(item.point.rssi),
            "snr": _or_zero(item.point.snr),
        }
        for item in points
    ]
    if points:
        time_range = f"{points[0].point.timestamp.isoformat()} - {points[-1].point.timestamp.isoformat()}"
    else:
        time_range = "No data"
    return {
        "deviceId": device_id,
        "totalPoints": len(history),
        "history": history,
        "timeRange": time_range,
    }
