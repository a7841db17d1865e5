"""Connectivity flags derived from last-seen timestamps.

Two independent thresholds are used:
``online_threshold_seconds`` drives the green "online" dot, while
``disconnect_timeout_seconds`` drives the "disconnected" warning and is the
value reported to the station view as ``disconnectTimeout``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pawtrack.config import Settings


@dataclass(frozen=True)
class Connectivity:
    online: bool
    disconnected: bool
    age_seconds: Optional[float]

    def as_dict(self) -> dict[str, object]:
        return {
            "online": self.online,
            "disconnected": self.disconnected,
            "ageSeconds": None if self.age_seconds is None else round(self.age_seconds, 3),
        }


def age_seconds(last_update: Optional[datetime], now: datetime) -> Optional[float]:
    if last_update is None:
        return None
    return (now - last_update).total_seconds()


def is_stale(last_update: Optional[datetime], now: datetime, timeout_seconds: float) -> bool:
    """True when ``last_update`` is older than ``timeout_seconds`` (or unknown)."""

    age = age_seconds(last_update, now)
    if age is None:
        return True
    return age > timeout_seconds


def evaluate(last_seen: Optional[datetime], now: datetime, settings: Settings) -> Connectivity:
    age = age_seconds(last_seen, now)
    return Connectivity(
        online=age is not None and age < settings.online_threshold_seconds,
        disconnected=is_stale(last_seen, now, settings.disconnect_timeout_seconds),
        age_seconds=age,
    )
