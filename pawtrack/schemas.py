from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Telemetry numbers are stored as sent; ints stay ints and floats stay floats.
Number = Union[int, float]


class StationModel(BaseModel):
    """Wire models use the camelCase keys the station firmware emits."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class BeaconData(StationModel):
    tracker_id: Optional[str] = None
    latitude: Optional[Number] = None
    longitude: Optional[Number] = None
    hdop: Optional[Number] = None
    sats: Optional[Number] = None
    battery_voltage: Optional[Number] = None
    rssi: Optional[Number] = None
    snr: Optional[Number] = None
    speed: Optional[Number] = None
    altitude: Optional[Number] = None
    led_on: Optional[bool] = None
    buzzer_on: Optional[bool] = None


class StationLocationPayload(StationModel):
    latitude: Optional[Number] = None
    longitude: Optional[Number] = None
    hdop: Optional[Number] = None
    sats: Optional[Number] = None
    altitude: Optional[Number] = None
    has_valid_fix: Optional[bool] = None


class RegisterDeviceRequest(StationModel):
    device_id: str = Field(min_length=1)
    device_name: Optional[str] = None


class BeaconReportRequest(StationModel):
    device_id: str = Field(min_length=1)
    beacon_data: BeaconData
    station_location: Optional[StationLocationPayload] = None


class ControlAckRequest(StationModel):
    device_id: str = Field(min_length=1)
    led_on: bool
    buzzer_on: bool


class ControlCommandRequest(StationModel):
    led_on: bool
    buzzer_on: bool


class LoginRequest(StationModel):
    username: Optional[str] = None
    password: Optional[str] = None
