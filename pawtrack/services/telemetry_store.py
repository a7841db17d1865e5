"""In-process state for registered stations, their beacons and recent history.

Every mutation and every snapshot read of a device happens under that
device's lock, so a reader never observes a beacon whose ``location`` and
newest history point come from different reports. Devices do not share
locks; the registry lock only guards the device map itself.

Nothing is persisted. A new store (and therefore a restarted process) starts
empty.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional, Tuple

from pawtrack.errors import IngestValidationError, NotFoundError
from pawtrack.schemas import BeaconData, Number, StationLocationPayload

logger = logging.getLogger(__name__)

ANONYMOUS_TRACKER_ID = "unknown"
DEFAULT_HISTORY_CAPACITY = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_device_name(device_id: str) -> str:
    return f"Station {device_id[:8]}"


def default_beacon_name(beacon_id: str) -> str:
    return f"Beacon {beacon_id[:8]}"


@dataclass(frozen=True)
class HistoryPoint:
    latitude: Optional[Number]
    longitude: Optional[Number]
    hdop: Optional[Number]
    sats: Optional[Number]
    battery_voltage: Optional[Number]
    rssi: Optional[Number]
    snr: Optional[Number]
    speed: Optional[Number]
    altitude: Optional[Number]
    timestamp: datetime


@dataclass(frozen=True)
class BeaconFix(HistoryPoint):
    """Latest report for a beacon: a history point plus actuator state."""

    led_on: Optional[bool] = None
    buzzer_on: Optional[bool] = None

    @classmethod
    def from_report(cls, report: BeaconData, timestamp: datetime) -> "BeaconFix":
        return cls(
            latitude=report.latitude,
            longitude=report.longitude,
            hdop=report.hdop,
            sats=report.sats,
            battery_voltage=report.battery_voltage,
            rssi=report.rssi,
            snr=report.snr,
            speed=report.speed,
            altitude=report.altitude,
            timestamp=timestamp,
            led_on=report.led_on,
            buzzer_on=report.buzzer_on,
        )

    def history_point(self) -> HistoryPoint:
        return HistoryPoint(
            latitude=self.latitude,
            longitude=self.longitude,
            hdop=self.hdop,
            sats=self.sats,
            battery_voltage=self.battery_voltage,
            rssi=self.rssi,
            snr=self.snr,
            speed=self.speed,
            altitude=self.altitude,
            timestamp=self.timestamp,
        )


@dataclass(frozen=True)
class StationFix:
    latitude: Optional[Number]
    longitude: Optional[Number]
    hdop: Optional[Number]
    sats: Optional[Number]
    altitude: Optional[Number]
    has_valid_fix: Optional[bool]
    timestamp: datetime

    @classmethod
    def from_report(cls, report: StationLocationPayload, timestamp: datetime) -> "StationFix":
        return cls(
            latitude=report.latitude,
            longitude=report.longitude,
            hdop=report.hdop,
            sats=report.sats,
            altitude=report.altitude,
            has_valid_fix=report.has_valid_fix,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class ControlState:
    led_on: bool
    buzzer_on: bool
    timestamp: datetime


@dataclass(frozen=True)
class BeaconSnapshot:
    id: str
    name: str
    first_seen: datetime
    last_seen: datetime
    location: Optional[BeaconFix]
    history_count: int


@dataclass(frozen=True)
class DeviceSnapshot:
    id: str
    name: str
    registered_at: datetime
    last_seen: datetime
    station_location: Optional[StationFix]
    control_state: Optional[ControlState]
    pending_control: Optional[ControlState]
    beacons: Tuple[BeaconSnapshot, ...]


@dataclass(frozen=True)
class IngestResult:
    device_id: str
    beacon_id: str
    location: BeaconFix
    beacon_created: bool
    device_last_seen: datetime


@dataclass(frozen=True)
class HistorySlice:
    device_id: str
    beacon_id: str
    beacon_name: str
    points: Tuple[HistoryPoint, ...]
    total_points: int


@dataclass(frozen=True)
class TrackedPoint:
    device_id: str
    beacon_id: str
    point: HistoryPoint


@dataclass(frozen=True)
class StoreStats:
    devices: int
    beacons: int
    history_points: int


@dataclass
class _BeaconRecord:
    id: str
    name: str
    first_seen: datetime
    last_seen: datetime
    history: Deque[HistoryPoint]
    location: Optional[BeaconFix] = None

    def snapshot(self) -> BeaconSnapshot:
        return BeaconSnapshot(
            id=self.id,
            name=self.name,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            location=self.location,
            history_count=len(self.history),
        )


@dataclass
class _DeviceRecord:
    id: str
    name: str
    registered_at: datetime
    last_seen: datetime
    station_location: Optional[StationFix] = None
    control_state: Optional[ControlState] = None
    pending_control: Optional[ControlState] = None
    beacons: Dict[str, _BeaconRecord] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            id=self.id,
            name=self.name,
            registered_at=self.registered_at,
            last_seen=self.last_seen,
            station_location=self.station_location,
            control_state=self.control_state,
            pending_control=self.pending_control,
            beacons=tuple(beacon.snapshot() for beacon in self.beacons.values()),
        )


class TelemetryStore:
    """Authoritative, process-lifetime container for station and beacon state."""

    def __init__(
        self,
        *,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        allow_anonymous_beacons: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")
        self.history_capacity = int(history_capacity)
        self.allow_anonymous_beacons = bool(allow_anonymous_beacons)
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._devices: Dict[str, _DeviceRecord] = {}

    def now(self) -> datetime:
        return self._clock()

    def _device(self, device_id: str) -> _DeviceRecord:
        with self._registry_lock:
            record = self._devices.get(device_id)
        if record is None:
            raise NotFoundError("Device not registered", device_id=device_id)
        return record

    # Mutations

    def register_device(self, device_id: str, name: Optional[str] = None) -> DeviceSnapshot:
        """Register ``device_id``; registering a known device changes nothing."""

        if not device_id:
            raise IngestValidationError("Device ID required")
        with self._registry_lock:
            record = self._devices.get(device_id)
            if record is None:
                now = self._clock()
                record = _DeviceRecord(
                    id=device_id,
                    name=name or default_device_name(device_id),
                    registered_at=now,
                    last_seen=now,
                )
                self._devices[device_id] = record
                logger.info("Registered device %s", device_id, extra={"device_id": device_id})
        with record.lock:
            return record.snapshot()

    def resolve_tracker_id(self, report: BeaconData) -> str:
        tracker_id = (report.tracker_id or "").strip()
        if tracker_id:
            return tracker_id
        if self.allow_anonymous_beacons:
            return ANONYMOUS_TRACKER_ID
        raise IngestValidationError("Beacon data requires a trackerId")

    def ingest_beacon_report(
        self,
        device_id: str,
        report: BeaconData,
        station_location: Optional[StationLocationPayload] = None,
    ) -> IngestResult:
        tracker_id = self.resolve_tracker_id(report)
        record = self._device(device_id)
        with record.lock:
            now = self._clock()
            record.last_seen = now
            if station_location is not None:
                record.station_location = StationFix.from_report(station_location, now)
            beacon = record.beacons.get(tracker_id)
            created = beacon is None
            if beacon is None:
                beacon = _BeaconRecord(
                    id=tracker_id,
                    name=default_beacon_name(tracker_id),
                    first_seen=now,
                    last_seen=now,
                    history=deque(maxlen=self.history_capacity),
                )
                record.beacons[tracker_id] = beacon
            location = BeaconFix.from_report(report, now)
            beacon.last_seen = now
            beacon.location = location
            beacon.history.append(location.history_point())
        if created:
            logger.info(
                "Discovered beacon %s on device %s",
                tracker_id,
                device_id,
                extra={"device_id": device_id, "beacon_id": tracker_id},
            )
        return IngestResult(
            device_id=device_id,
            beacon_id=tracker_id,
            location=location,
            beacon_created=created,
            device_last_seen=now,
        )

    def record_control_ack(self, device_id: str, led_on: bool, buzzer_on: bool) -> ControlState:
        record = self._device(device_id)
        with record.lock:
            now = self._clock()
            state = ControlState(led_on=bool(led_on), buzzer_on=bool(buzzer_on), timestamp=now)
            record.control_state = state
            record.last_seen = now
        return state

    def set_pending_control(self, device_id: str, led_on: bool, buzzer_on: bool) -> ControlState:
        """Queue a command for the station; an undelivered earlier command is replaced."""

        record = self._device(device_id)
        with record.lock:
            command = ControlState(led_on=bool(led_on), buzzer_on=bool(buzzer_on), timestamp=self._clock())
            record.pending_control = command
        return command

    def take_pending_control(self, device_id: str) -> Optional[ControlState]:
        """Return and clear the pending command. Unknown devices have none."""

        with self._registry_lock:
            record = self._devices.get(device_id)
        if record is None:
            return None
        with record.lock:
            command, record.pending_control = record.pending_control, None
        return command

    def clear(self) -> None:
        with self._registry_lock:
            self._devices.clear()

    # Reads

    def list_devices(self) -> List[DeviceSnapshot]:
        with self._registry_lock:
            records = list(self._devices.values())
        snapshots = []
        for record in records:
            with record.lock:
                snapshots.append(record.snapshot())
        return snapshots

    def get_device(self, device_id: str) -> DeviceSnapshot:
        record = self._device(device_id)
        with record.lock:
            return record.snapshot()

    def get_beacon_history(self, device_id: str, beacon_id: str, limit: Optional[int] = None) -> HistorySlice:
        """Return the newest ``limit`` points (oldest first); ``None`` or <= 0 means all."""

        record = self._device(device_id)
        with record.lock:
            beacon = record.beacons.get(beacon_id)
            if beacon is None:
                raise NotFoundError("Beacon not found", device_id=device_id, beacon_id=beacon_id)
            points = tuple(beacon.history)
            name = beacon.name
        total = len(points)
        if limit is not None and limit > 0:
            points = points[-limit:]
        return HistorySlice(
            device_id=device_id,
            beacon_id=beacon_id,
            beacon_name=name,
            points=points,
            total_points=total,
        )

    def get_device_history(self, device_id: str) -> List[TrackedPoint]:
        """All beacons of a device merged into one timeline, oldest first."""

        record = self._device(device_id)
        with record.lock:
            merged = [
                TrackedPoint(device_id=device_id, beacon_id=beacon.id, point=point)
                for beacon in record.beacons.values()
                for point in beacon.history
            ]
        merged.sort(key=lambda item: item.point.timestamp)
        return merged

    def find_tracker_history(self, tracker_id: str) -> List[TrackedPoint]:
        """History for a bare tracker id across every device that has seen it."""

        merged: List[TrackedPoint] = []
        with self._registry_lock:
            records = list(self._devices.values())
        for record in records:
            with record.lock:
                beacon = record.beacons.get(tracker_id)
                if beacon is None:
                    continue
                merged.extend(
                    TrackedPoint(device_id=record.id, beacon_id=tracker_id, point=point)
                    for point in beacon.history
                )
        merged.sort(key=lambda item: item.point.timestamp)
        return merged

    def stats(self) -> StoreStats:
        devices = self.list_devices()
        return StoreStats(
            devices=len(devices),
            beacons=sum(len(device.beacons) for device in devices),
            history_points=sum(beacon.history_count for device in devices for beacon in device.beacons),
        )
