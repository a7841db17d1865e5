from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, status

from pawtrack.auth import viewer_authorized
from pawtrack.config import get_settings
from pawtrack.http_utils import broadcaster

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket):
    if not viewer_authorized(websocket, get_settings()):
        logger.info("Rejected unauthenticated viewer")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    hub = broadcaster(websocket.app)
    hub.subscribe(websocket)
    try:
        # Push-only channel: client frames are read and dropped.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        hub.unsubscribe(websocket)
