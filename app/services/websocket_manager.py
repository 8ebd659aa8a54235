"""
Viewer registry for live fixtures.

Each fixture has its own list of open sockets. The only thing ever pushed is
a full fixture snapshot, so a viewer that misses one update catches up on the
next.
"""
import asyncio
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        # Starlette sockets are unhashable, hence lists rather than sets.
        self.viewers: dict[int, list[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, fixture_id: int) -> None:
        await websocket.accept()
        async with self._lock:
            self.viewers.setdefault(fixture_id, []).append(websocket)
        logger.info("Viewer joined fixture %s (%s watching)", fixture_id, self.get_connection_count(fixture_id))

    async def disconnect(self, websocket: WebSocket, fixture_id: int) -> None:
        async with self._lock:
            self._forget(fixture_id, [websocket])
        logger.info("Viewer left fixture %s", fixture_id)

    def _forget(self, fixture_id: int, sockets: list[WebSocket]) -> None:
        watching = self.viewers.get(fixture_id)
        if watching is None:
            return
        self.viewers[fixture_id] = [ws for ws in watching if all(ws is not s for s in sockets)]
        if not self.viewers[fixture_id]:
            del self.viewers[fixture_id]

    async def broadcast_fixture(self, fixture_id: int, snapshot: dict[str, Any]) -> int:
        """Send a fixture snapshot to every viewer of that fixture; return how many got it.

        Sockets that fail to receive are dropped from the registry.
        """
        message = {"type": "fixture", "fixture_id": fixture_id, "data": snapshot}
        sent = 0
        dead: list[WebSocket] = []
        for websocket in list(self.viewers.get(fixture_id, [])):
            try:
                await websocket.send_json(message)
                sent += 1
            except Exception as e:
                logger.warning("Dropping viewer of fixture %s: %s", fixture_id, e)
                dead.append(websocket)

        if dead:
            async with self._lock:
                self._forget(fixture_id, dead)
        return sent

    def get_connection_count(self, fixture_id: int) -> int:
        return len(self.viewers.get(fixture_id, []))


_manager: ConnectionManager | None = None


def get_websocket_manager() -> ConnectionManager:
    """Process-wide manager shared by the HTTP routes, the WS route and the bus listener."""
    global _manager
    if _manager is None:
        _manager = ConnectionManager()
    return _manager
