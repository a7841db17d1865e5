"""Runtime configuration for the pawtrack server."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_SESSION_SECRET = "pawtracker-secret-key"


def _positive_seconds(value: float, *, field: str) -> float:
    try:
        parsed = float(value)
    except Exception as exc:
        raise ValueError(f"{field} must be a number") from exc
    if parsed != parsed:  # NaN
        raise ValueError(f"{field} must be a real number")
    if parsed <= 0:
        raise ValueError(f"{field} must be greater than zero")
    return parsed


class Settings(BaseSettings):
    """Environment driven settings for the telemetry backend."""

    service_name: str = "pawtrack-server"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://127.0.0.1:4317"
    otel_exporter_otlp_headers: Optional[str] = None
    otel_sample_ratio: float = 1.0

    history_capacity: int = Field(default=1000, ge=1, description="Ring buffer size per beacon")
    history_default_limit: int = Field(
        default=1000,
        ge=1,
        description="History slice length used when a request omits ?limit=",
    )
    disconnect_timeout_seconds: float = Field(
        default=60.0,
        description="Age after which a station or beacon is flagged disconnected",
    )
    online_threshold_seconds: float = Field(
        default=60.0,
        description="Age below which a station or beacon is shown as online",
    )
    allow_anonymous_beacons: bool = Field(
        default=False,
        description="File reports without a trackerId under the 'unknown' beacon instead of rejecting them",
    )

    ws_send_timeout_seconds: float = Field(default=2.0, description="Per-viewer send timeout during broadcast")
    ws_require_auth: bool = True

    admin_username: str = "admin"
    admin_password: SecretStr = SecretStr(DEFAULT_ADMIN_PASSWORD)
    session_secret: SecretStr = SecretStr(DEFAULT_SESSION_SECRET)
    session_max_age_seconds: int = Field(default=24 * 60 * 60, ge=60)
    session_https_only: bool = False
    api_token: SecretStr | None = None
    ingest_token: SecretStr | None = None

    model_config = SettingsConfigDict(
        env_prefix="PAWTRACK_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("disconnect_timeout_seconds")
    @classmethod
    def _check_disconnect_timeout(cls, value: float) -> float:
        return _positive_seconds(value, field="disconnect_timeout_seconds")

    @field_validator("online_threshold_seconds")
    @classmethod
    def _check_online_threshold(cls, value: float) -> float:
        return _positive_seconds(value, field="online_threshold_seconds")

    @field_validator("ws_send_timeout_seconds")
    @classmethod
    def _check_send_timeout(cls, value: float) -> float:
        return _positive_seconds(value, field="ws_send_timeout_seconds")

    @property
    def uses_default_credentials(self) -> bool:
        return self.admin_password.get_secret_value() == DEFAULT_ADMIN_PASSWORD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
