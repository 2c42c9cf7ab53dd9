"""WebSocket connection manager — broadcasts EngineResults to connected clients."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

from fastapi import WebSocket

from app.models.result import EngineResult

logger = logging.getLogger("montage-core.ws")

Listener = Callable[[EngineResult], Any]


class ConnectionManager:
    """Manages WebSocket connections and in-process listeners grouped by world_id."""

    def __init__(self) -> None:
        self._connections: dict[str, dict[str, WebSocket]] = defaultdict(dict)
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    async def connect(self, world_id: str, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[world_id][user_id] = websocket

    def disconnect(self, world_id: str, user_id: str) -> None:
        self._connections[world_id].pop(user_id, None)
        if not self._connections[world_id]:
            del self._connections[world_id]

    def subscribe(self, world_id: str, listener: Listener) -> Callable[[], None]:
        """Register a same-process observer. Returns an unsubscribe function."""
        self._listeners[world_id].append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(world_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(world_id, None)

        return _unsubscribe

    async def broadcast_to_world(self, world_id: str, result: EngineResult) -> None:
        """Send an EngineResult to every client and local listener of a world."""
        for listener in list(self._listeners.get(world_id, [])):
            try:
                outcome = listener(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("world=%s state listener error", world_id)

        connections = self._connections.get(world_id, {})
        dead: list[str] = []
        payload = result.model_dump_json()
        for user_id, ws in connections.items():
            try:
                await ws.send_text(payload)
            except Exception:
                dead.append(user_id)
        for uid in dead:
            self.disconnect(world_id, uid)

    def get_connected_users(self, world_id: str) -> list[str]:
        return list(self._connections.get(world_id, {}).keys())


# Module-level singleton
ws_manager = ConnectionManager()
