import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Open notification sockets, grouped by user id."""

    def __init__(self):
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id, websocket: WebSocket):
        await websocket.accept()
        self._connections[str(user_id)].add(websocket)

    def disconnect(self, user_id, websocket: WebSocket):
        sockets = self._connections.get(str(user_id))
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            self._connections.pop(str(user_id), None)

    def session_count(self, user_id) -> int:
        return len(self._connections.get(str(user_id), ()))

    async def emit_to_user(self, user_id, event: str, payload: dict):
        if not user_id:
            return

        for websocket in list(self._connections.get(str(user_id), ())):
            try:
                await websocket.send_json({"event": event, "data": payload})
            except Exception:
                # dead socket
                logger.debug("LIVE_PUSH_DROPPED user=%s event=%s", user_id, event)
                self.disconnect(user_id, websocket)


hub = ConnectionHub()
