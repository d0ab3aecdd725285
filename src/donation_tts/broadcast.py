"""Push-channel fan-out to connected player clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from starlette.websockets import WebSocket

from .models import ChannelEvent

logger = logging.getLogger(__name__)


def envelope(event: ChannelEvent | str, data: Any = None) -> dict[str, Any]:
    """Wrap ``data`` in the wire envelope shared by server and clients."""

    name = event.value if isinstance(event, ChannelEvent) else event
    return {"event": name, "data": data}


class Broadcaster(Protocol):
    """Anything that can deliver an event to every connected client."""

    async def broadcast(self, event: ChannelEvent, data: Any = None) -> int:
        ...


class ConnectionManager:
    """Tracks open WebSocket connections and fans events out to them.

    A failed send drops that connection; delivery to the others continues.
    """

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("channel.connected", extra={"clients": len(self._connections)})

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("channel.disconnected", extra={"clients": len(self._connections)})

    @property
    def client_count(self) -> int:
        return len(self._connections)

    async def send(self, websocket: WebSocket, event: ChannelEvent, data: Any = None) -> None:
        await websocket.send_json(envelope(event, data))

    async def broadcast(self, event: ChannelEvent, data: Any = None) -> int:
        """Send ``event`` to every client; return how many received it."""

        async with self._lock:
            targets = list(self._connections)

        message = envelope(event, data)
        delivered = 0
        stale: list[WebSocket] = []
        for websocket in targets:
            try:
                await websocket.send_json(message)
            except Exception as exc:
                logger.warning("channel.send_failed", extra={"event": message["event"], "error": str(exc)})
                stale.append(websocket)
            else:
                delivered += 1

        if stale:
            async with self._lock:
                self._connections.difference_update(stale)

        logger.debug("channel.broadcast", extra={"event": message["event"], "delivered": delivered})
        return delivered
