from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from pawtrack.config import Settings
from pawtrack.errors import NotFoundError, PawtrackError
from pawtrack.schemas import BeaconReportRequest, ControlAckRequest, ControlCommandRequest, RegisterDeviceRequest
from pawtrack.services import projections, staleness
from pawtrack.services.broadcaster import (
    RealtimeBroadcaster,
    beacon_update_event,
    control_command_event,
    control_status_event,
)
from pawtrack.services.telemetry_store import ControlState, DeviceSnapshot, IngestResult, TelemetryStore

logger = logging.getLogger(__name__)


class IngestionService:
    """Folds station requests into the store and notifies viewers afterwards."""

    def __init__(self, store: TelemetryStore, broadcaster: RealtimeBroadcaster, settings: Settings) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.settings = settings
        self._notifications: Set[asyncio.Task] = set()
        self._last_notification: Optional[asyncio.Task] = None

    def _notify(self, event: Dict[str, Any]) -> None:
        """Schedule ``event`` for every viewer without holding up the station request."""

        previous = self._last_notification
        task = asyncio.get_running_loop().create_task(self._deliver(event, previous))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)
        self._last_notification = task

    async def _deliver(self, event: Dict[str, Any], previous: Optional[asyncio.Task]) -> None:
        # Events reach viewers in ingestion order.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self.broadcaster.broadcast(event)
        except Exception:
            logger.exception("Broadcast of %s failed", event.get("type"))

    async def drain(self) -> None:
        """Wait for notifications that are still being delivered."""

        pending = list(self._notifications)
        if pending:
            await asyncio.wait(pending)

    def register(self, request: RegisterDeviceRequest) -> DeviceSnapshot:
        return self.store.register_device(request.device_id, request.device_name)

    async def ingest_beacon(self, request: BeaconReportRequest) -> IngestResult:
        try:
            result = self.store.ingest_beacon_report(
                request.device_id,
                request.beacon_data,
                request.station_location,
            )
        except PawtrackError as exc:
            logger.warning(
                "Rejected beacon report from %s: %s",
                request.device_id,
                exc,
                extra={"device_id": request.device_id},
            )
            raise
        logger.debug(
            "Ingested beacon %s via %s",
            result.beacon_id,
            result.device_id,
            extra={"device_id": result.device_id, "beacon_id": result.beacon_id},
        )
        connectivity = staleness.evaluate(result.location.timestamp, self.store.now(), self.settings)
        self._notify(
            beacon_update_event(
                result.device_id,
                result.beacon_id,
                projections.location_payload(result.location),
                connectivity.as_dict(),
            )
        )
        return result

    async def acknowledge_control(self, request: ControlAckRequest) -> ControlState:
        try:
            state = self.store.record_control_ack(request.device_id, request.led_on, request.buzzer_on)
        except NotFoundError:
            logger.warning("Control ack from unregistered device %s", request.device_id)
            raise
        self._notify(control_status_event(request.device_id, state.led_on, state.buzzer_on))
        return state

    async def issue_control(self, device_id: str, request: ControlCommandRequest) -> ControlState:
        command = self.store.set_pending_control(device_id, request.led_on, request.buzzer_on)
        logger.info(
            "Queued control command for %s (led=%s buzzer=%s)",
            device_id,
            command.led_on,
            command.buzzer_on,
            extra={"device_id": device_id},
        )
        self._notify(control_command_event(device_id, command.led_on, command.buzzer_on))
        return command

    def poll_control(self, device_id: str) -> Dict[str, Any]:
        command = self.store.take_pending_control(device_id)
        if command is None:
            return {"hasCommand": False}
        return {"hasCommand": True, "ledOn": command.led_on, "buzzerOn": command.buzzer_on}
