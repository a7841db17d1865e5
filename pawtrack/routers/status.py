from __future__ import annotations

import time
from typing import Dict

import psutil
from fastapi import APIRouter, Depends, Request

from pawtrack.config import Settings, get_settings
from pawtrack.http_utils import broadcaster, telemetry_store

router = APIRouter(prefix="/v1")


@router.get("/status")
async def status_endpoint(request: Request, settings: Settings = Depends(get_settings)) -> Dict[str, object]:
    uptime = int(time.monotonic() - getattr(request.app.state, "started_at", time.monotonic()))
    stats = telemetry_store(request.app).stats()
    process = psutil.Process()
    return {
        "service": settings.service_name,
        "service_version": settings.service_version,
        "uptime_seconds": uptime,
        "cpu_percent": psutil.cpu_percent(interval=0.0),
        "memory_rss_bytes": process.memory_info().rss,
        "devices": stats.devices,
        "beacons": stats.beacons,
        "history_points": stats.history_points,
        "history_capacity": telemetry_store(request.app).history_capacity,
        "viewers": broadcaster(request.app).connection_count,
        "disconnect_timeout_seconds": settings.disconnect_timeout_seconds,
        "online_threshold_seconds": settings.online_threshold_seconds,
    }
