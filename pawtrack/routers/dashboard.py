"""Read-only dashboard queries plus the control command issued from the UI."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from pawtrack.auth import require_viewer_auth
from pawtrack.config import Settings, get_settings
from pawtrack.http_utils import ingestion, telemetry_store
from pawtrack.schemas import ControlCommandRequest
from pawtrack.services import projections

router = APIRouter(prefix="/api", dependencies=[Depends(require_viewer_auth)])


def _history_limit(raw: Optional[str], default: int) -> int:
    # Unparseable, zero or negative limits fall back to the default.
    try:
        limit = int(raw) if raw is not None else 0
    except ValueError:
        return default
    return limit if limit > 0 else default


@router.get("/devices")
async def list_devices(request: Request, settings: Settings = Depends(get_settings)):
    store = telemetry_store(request.app)
    return projections.device_list(store.list_devices(), store.now(), settings)


@router.get("/device/{device_id}/beacons")
async def device_beacons(device_id: str, request: Request, settings: Settings = Depends(get_settings)):
    store = telemetry_store(request.app)
    return projections.device_beacons(store.get_device(device_id), store.now(), settings)


@router.get("/device/{device_id}/beacon/{beacon_id}/history")
async def beacon_history(
    device_id: str,
    beacon_id: str,
    request: Request,
    limit: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    history = telemetry_store(request.app).get_beacon_history(
        device_id, beacon_id, _history_limit(limit, settings.history_default_limit)
    )
    return projections.beacon_history(history)


@router.get("/tracker/{tracker_id}/history")
async def tracker_history(tracker_id: str, request: Request):
    points = telemetry_store(request.app).find_tracker_history(tracker_id)
    return projections.tracker_history(tracker_id, points)


@router.post("/device/{device_id}/control")
async def issue_control(device_id: str, payload: ControlCommandRequest, request: Request):
    await ingestion(request.app).issue_control(device_id, payload)
    return {"success": True}


@router.get("/station/{device_id}/data")
async def station_data(device_id: str, request: Request, settings: Settings = Depends(get_settings)):
    store = telemetry_store(request.app)
    return projections.station_data(store.get_device(device_id), store.now(), settings)


@router.get("/station/{device_id}/history")
async def station_history(device_id: str, request: Request):
    points = telemetry_store(request.app).get_device_history(device_id)
    return projections.merged_history(device_id, points)
