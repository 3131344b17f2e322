from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any

import anyio.from_thread
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class ConnectionHub:
    """In-process fan-out of JSON events to websocket subscribers, keyed by channel."""

    def __init__(self) -> None:
        self._sockets: dict[str, dict[str, tuple[str, WebSocket]]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, channel: str, user_id: str) -> str:
        await websocket.accept()
        socket_id = uuid.uuid4().hex
        async with self._lock:
            self._sockets[channel][socket_id] = (user_id, websocket)
        logger.info(f"[realtime] connect channel={channel} user_id={user_id}")
        return socket_id

    async def disconnect(self, channel: str, socket_id: str) -> None:
        async with self._lock:
            sockets = self._sockets.get(channel)
            if sockets is None:
                return
            sockets.pop(socket_id, None)
            if not sockets:
                self._sockets.pop(channel, None)

    def has_subscribers(self, channel: str) -> bool:
        return bool(self._sockets.get(channel))

    async def broadcast(self, channel: str, event: dict[str, Any], exclude_user_id: str | None = None) -> int:
        payload = jsonable_encoder(event)
        delivered = 0
        dead: list[str] = []
        for socket_id, (user_id, ws) in list(self._sockets.get(channel, {}).items()):
            if exclude_user_id and user_id == exclude_user_id:
                continue
            try:
                await ws.send_json(payload)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError):
                dead.append(socket_id)
        for socket_id in dead:
            await self.disconnect(channel, socket_id)
        return delivered

    def publish(self, channel: str, event: dict[str, Any], exclude_user_id: str | None = None) -> None:
        """Broadcast from a sync route handler running in the worker threadpool."""
        if not self.has_subscribers(channel):
            return
        try:
            anyio.from_thread.run(self.broadcast, channel, event, exclude_user_id)
        except RuntimeError as exc:
            logger.warning(f"[realtime] publish outside worker thread channel={channel} error={exc}")


hub = ConnectionHub()
