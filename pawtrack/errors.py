"""Error taxonomy shared by the store, the services and the HTTP layer."""
from __future__ import annotations


class PawtrackError(Exception):
    """Base exception for all pawtrack errors."""

    status_code = 500


class IngestValidationError(PawtrackError):
    """A request is missing a required field; rejected before touching the store."""

    status_code = 400


class NotFoundError(PawtrackError):
    """An unknown device or beacon was referenced."""

    status_code = 404

    def __init__(self, message: str, *, device_id: str | None = None, beacon_id: str | None = None) -> None:
        self.device_id = device_id
        self.beacon_id = beacon_id
        super().__init__(message)
