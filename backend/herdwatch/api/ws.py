from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from herdwatch.schemas.analysis import RealtimeFrame
from herdwatch.services.throttle import ThrottleGate

logger = logging.getLogger(__name__)

ws_router = APIRouter()


class LiveConnections:
    """Tracks open realtime sockets by connection id.

    Frames sent without a video id are throttled under their connection id;
    that window is dropped when the socket closes.
    """

    def __init__(self, throttle: ThrottleGate | None = None) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._throttle = throttle
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        async with self._lock:
            self._connections[connection_id] = websocket
            logger.info("realtime client %s connected, total: %d", connection_id, len(self._connections))
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)
        if self._throttle is not None:
            self._throttle.forget(connection_id)
        logger.info("realtime client %s disconnected", connection_id)

    def __len__(self) -> int:
        return len(self._connections)


@ws_router.websocket("/ws/realtime")
async def realtime_socket(websocket: WebSocket) -> None:
    services = websocket.app.state.services
    connections: LiveConnections = websocket.app.state.connections
    connection_id = await connections.connect(websocket)

    async def emit(event: str, data: dict[str, Any]) -> None:
        await websocket.send_json({"event": event, "data": data})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await emit("analysis_error", {"error": "malformed message"})
                continue
            if not isinstance(message, dict) or message.get("event") != "analyze_frame":
                await emit("analysis_error", {"error": "unsupported event"})
                continue
            try:
                frame = RealtimeFrame.model_validate(message.get("data") or {})
            except ValidationError as exc:
                await emit("analysis_error", {"error": f"invalid frame payload: {exc.error_count()} errors"})
                continue
            await services.realtime.handle_frame(connection_id, frame, emit)
    except WebSocketDisconnect:
        pass
    finally:
        await connections.disconnect(connection_id)
