"""WebSocket fan-out of live server events (client list, log lines)."""

import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventHub:
    """Tracks control-panel WebSockets and pushes events to them."""

    def __init__(self) -> None:
        self._sockets: list[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._sockets)

    async def subscribe(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._sockets.append(websocket)
        logger.debug(f"Event subscriber joined. Total: {len(self._sockets)}")

    async def unsubscribe(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._sockets:
                self._sockets.remove(websocket)
        logger.debug(f"Event subscriber left. Total: {len(self._sockets)}")

    async def publish(self, event: str, data: dict) -> None:
        """Send an event to every subscriber, dropping the ones that fail."""
        message = json.dumps({"event": event, "data": data})
        async with self._lock:
            dead: list[WebSocket] = []
            for ws in self._sockets:
                try:
                    await ws.send_text(message)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                self._sockets.remove(ws)

    async def on_clients_changed(self, clients: list[str]) -> None:
        """Observer for ClientRegistry."""
        await self.publish("client_update", {"clients": clients})


class WebSocketLogHandler(logging.Handler):
    """
    Forwards formatted log records to the hub as ``server_log`` events.
    Safe to call from worker threads.
    """

    def __init__(self, hub: EventHub, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self.hub = hub
        self.loop = loop
        self._pending: set[asyncio.Task] = set()

    def emit(self, record: logging.LogRecord) -> None:
        if not self.hub.subscriber_count or self.loop.is_closed():
            return
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        payload = {"level": record.levelname, "message": line}
        self.loop.call_soon_threadsafe(self._publish, payload)

    def _publish(self, payload: dict) -> None:
        task = self.loop.create_task(self.hub.publish("server_log", payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
