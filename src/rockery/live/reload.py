"""WebSocket-based live reload for development mode.

Notifies connected browsers after every completed rebuild so that they
reload the current page.
"""

import logging
import weakref

from aiohttp import WSMsgType, web

logger = logging.getLogger(__name__)

LIVE_RELOAD_PATH = "/ws/live-reload"
RELOAD_MESSAGE = "rebuild"


class LiveReloadManager:
    """Manages WebSocket connections for live reload.

    Connections are held weakly; a client that connects after a rebuild
    only hears about the next one.
    """

    def __init__(self) -> None:
        self._connections: weakref.WeakSet[web.WebSocketResponse] = weakref.WeakSet()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connection for live reload.

        Args:
            request: aiohttp request

        Returns:
            WebSocket response
        """
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._connections.add(ws)
        logger.debug(f"Live reload client connected ({len(self._connections)} open)")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    break
        finally:
            self._connections.discard(ws)

        return ws

    async def broadcast(self) -> None:
        """Send the reload message to every open connection."""
        for ws in list(self._connections):
            if ws.closed:
                continue
            try:
                await ws.send_str(RELOAD_MESSAGE)
            except ConnectionResetError:
                # Client disconnected mid-send, will be cleaned up by WeakSet
                pass

    async def stop(self) -> None:
        """Close all connections."""
        for ws in list(self._connections):
            await ws.close()


def create_live_reload_routes(manager: LiveReloadManager) -> list[web.RouteDef]:
    """Create routes for live reload WebSocket.

    Args:
        manager: LiveReloadManager instance

    Returns:
        List of route definitions
    """
    return [web.get(LIVE_RELOAD_PATH, manager.handle_websocket)]
