"""Endpoints called by stations (the relay units), not by browsers."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from pawtrack.auth import require_station_auth
from pawtrack.http_utils import ingestion
from pawtrack.schemas import BeaconReportRequest, ControlAckRequest, RegisterDeviceRequest

router = APIRouter(prefix="/api/device", dependencies=[Depends(require_station_auth)])


@router.post("/register")
async def register_device(payload: RegisterDeviceRequest, request: Request):
    device = ingestion(request.app).register(payload)
    return {"success": True, "deviceId": device.id}


@router.post("/beacon")
async def post_beacon_report(payload: BeaconReportRequest, request: Request):
    await ingestion(request.app).ingest_beacon(payload)
    return {"success": True}


@router.post("/control-status")
async def post_control_status(payload: ControlAckRequest, request: Request):
    await ingestion(request.app).acknowledge_control(payload)
    return {"success": True}


@router.get("/{device_id}/control")
async def poll_control(device_id: str, request: Request):
    return ingestion(request.app).poll_control(device_id)
