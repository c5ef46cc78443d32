"""Registry of HTTP clients currently connected to the server."""

import asyncio
import logging
from typing import Awaitable, Callable

from uvicorn.protocols.http.h11_impl import H11Protocol

logger = logging.getLogger(__name__)

ClientObserver = Callable[[list[str]], Awaitable[None]]


class ClientRegistry:
    """
    Open client connections, keyed ``ip:port``.

    Observers are awaited with the current client list whenever a client
    connects or its socket closes.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._lock = asyncio.Lock()
        self._observers: list[ClientObserver] = []
        self._pending: set[asyncio.Task] = set()

    def on_change(self, callback: ClientObserver) -> None:
        """Register callback: async fn(clients: list[str])."""
        self._observers.append(callback)

    @property
    def clients(self) -> list[str]:
        return sorted(self._active)

    async def connected(self, client: str) -> None:
        async with self._lock:
            if client in self._active:
                return
            self._active.add(client)
        logger.debug(f"Client connected: {client}. Total clients: {len(self._active)}")
        await self._notify()

    async def disconnected(self, client: str) -> None:
        async with self._lock:
            if client not in self._active:
                return
            self._active.discard(client)
        logger.debug(f"Client disconnected: {client}. Total clients: {len(self._active)}")
        await self._notify()

    def schedule(self, loop: asyncio.AbstractEventLoop, update: Awaitable[None]) -> None:
        """Run an update from a synchronous protocol callback."""
        task = loop.create_task(update)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self) -> None:
        clients = self.clients
        for cb in self._observers:
            try:
                await cb(clients)
            except Exception as e:
                logger.error(f"Client observer error: {e}")


def tracking_protocol(registry: ClientRegistry) -> type[H11Protocol]:
    """
    uvicorn HTTP protocol that reports each connection to ``registry``.

    A connection counts from accept until its socket closes, idle
    keep-alive time included. Upgrading to a WebSocket hands the socket
    to the event feed, so the connection leaves the registry there.
    """

    class ClientTrackingProtocol(H11Protocol):

        def connection_made(self, transport):
            super().connection_made(transport)
            self.client_key = f"{self.client[0]}:{self.client[1]}" if self.client else "unknown"
            registry.schedule(self.loop, registry.connected(self.client_key))

        def connection_lost(self, exc):
            super().connection_lost(exc)
            registry.schedule(self.loop, registry.disconnected(self.client_key))

        def handle_websocket_upgrade(self, event):
            super().handle_websocket_upgrade(event)
            registry.schedule(self.loop, registry.disconnected(self.client_key))

    return ClientTrackingProtocol
