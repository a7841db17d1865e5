"""Fan-out of change notifications to live dashboard connections."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Protocol, Set

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

BEACON_UPDATE = "beacon_update"
CONTROL_STATUS = "control_status"
CONTROL_COMMAND = "control_command"


class ViewerConnection(Protocol):
    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


def is_open(connection: ViewerConnection) -> bool:
    return (
        connection.client_state == WebSocketState.CONNECTED
        and connection.application_state == WebSocketState.CONNECTED
    )


def beacon_update_event(device_id: str, beacon_id: str, location: Dict[str, Any], connectivity: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": BEACON_UPDATE,
        "deviceId": device_id,
        "trackerId": beacon_id,
        "beaconId": beacon_id,
        "data": location,
        "connectivity": connectivity,
    }


def control_status_event(device_id: str, led_on: bool, buzzer_on: bool) -> Dict[str, Any]:
    return {"type": CONTROL_STATUS, "deviceId": device_id, "ledOn": led_on, "buzzerOn": buzzer_on}


def control_command_event(device_id: str, led_on: bool, buzzer_on: bool) -> Dict[str, Any]:
    return {"type": CONTROL_COMMAND, "deviceId": device_id, "ledOn": led_on, "buzzerOn": buzzer_on}


class RealtimeBroadcaster:
    """Global, best-effort push to every subscribed viewer.

    There is no replay: a viewer that connects late pulls a snapshot from the
    query API. Connections found closed are dropped from the set during a
    broadcast. Connections that fail or exceed ``send_timeout_seconds`` are
    dropped and closed with 1011 so the dashboard reconnects and reloads.
    """

    DROP_CLOSE_CODE = 1011

    def __init__(self, *, send_timeout_seconds: float = 2.0) -> None:
        self._send_timeout = float(send_timeout_seconds)
        self._connections: Set[ViewerConnection] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscribe(self, connection: ViewerConnection) -> None:
        self._connections.add(connection)
        logger.info("Viewer connected (%d active)", len(self._connections))

    def unsubscribe(self, connection: ViewerConnection) -> None:
        if connection in self._connections:
            self._connections.discard(connection)
            logger.info("Viewer disconnected (%d active)", len(self._connections))

    async def broadcast(self, event: Dict[str, Any]) -> int:
        """Send ``event`` to every open connection and return the delivered count."""

        if not self._connections:
            return 0
        data = json.dumps(event, default=str)
        targets = list(self._connections)
        delivered = await asyncio.gather(*(self._send(connection, data) for connection in targets))
        return sum(1 for ok in delivered if ok)

    async def _send(self, connection: ViewerConnection, data: str) -> bool:
        if not is_open(connection):
            self._connections.discard(connection)
            return False
        try:
            await asyncio.wait_for(connection.send_text(data), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.info("Dropping viewer slower than %.1fs", self._send_timeout)
            await self._drop(connection)
            return False
        except Exception as exc:
            logger.info("Dropping failed viewer: %s", exc)
            await self._drop(connection)
            return False
        return True

    async def _drop(self, connection: ViewerConnection) -> None:
        self._connections.discard(connection)
        try:
            await asyncio.wait_for(connection.close(code=self.DROP_CLOSE_CODE), timeout=self._send_timeout)
        except Exception as exc:
            logger.debug("Viewer did not close cleanly: %s", exc)

    async def close_all(self) -> None:
        connections = list(self._connections)
        self._connections.clear()
        for connection in connections:
            if not is_open(connection):
                continue
            try:
                await connection.close(code=1001)
            except Exception as exc:
                logger.debug("Error closing viewer during shutdown: %s", exc)
