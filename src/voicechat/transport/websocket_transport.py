"""WebSocket transport implementation.

Accepts client connections on a fixed path and exposes each one as a
TransportConnection carrying text (control) and binary (audio) frames.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import websockets
from websockets.asyncio.server import ServerConnection, serve
from websockets.protocol import State

from voicechat.errors import TransportError
from voicechat.transport.base import Transport, TransportConnection

logger = logging.getLogger(__name__)

CLOSE_POLICY_VIOLATION = 1008
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketConnection(TransportConnection):
    """WebSocket-based client connection."""

    def __init__(self, websocket: ServerConnection) -> None:
        """Initialize WebSocket connection wrapper.

        Args:
            websocket: Accepted server-side WebSocket connection
        """
        self._websocket = websocket
        self._closed = False

    @property
    def remote_address(self) -> str:
        """Peer address as host:port."""
        remote = self._websocket.remote_address
        if isinstance(remote, tuple) and len(remote) >= 2:
            return f"{remote[0]}:{remote[1]}"
        return str(remote)

    @property
    def is_connected(self) -> bool:
        """Check if the connection is still open."""
        return not self._closed and self._websocket.state == State.OPEN

    async def receive_frames(self) -> AsyncIterator[str | bytes]:
        """Receive text and binary frames until the client disconnects.

        Yields:
            str for text frames, bytes for binary frames

        Raises:
            TransportError: If the connection closes abnormally
        """
        try:
            async for message in self._websocket:
                yield message
        except websockets.exceptions.ConnectionClosedError as e:
            raise TransportError(f"WebSocket connection lost: {e}") from e
        finally:
            self._closed = True

    async def send_text(self, payload: str) -> None:
        """Send one text frame to the client.

        Raises:
            TransportError: If the connection is closed or broken
        """
        if not self.is_connected:
            raise TransportError("WebSocket connection is closed")

        try:
            await self._websocket.send(payload)
        except websockets.exceptions.ConnectionClosed as e:
            self._closed = True
            raise TransportError(f"WebSocket connection closed: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the WebSocket. Calling it twice is a no-op."""
        if self._closed:
            return
        self._closed = True

        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.warning(
                "Error during connection close",
                extra={"remote": self.remote_address, "error": str(e)},
            )


class WebSocketTransport(Transport):
    """WebSocket transport server.

    Serves one upgrade path; connections are queued for the server loop to
    accept and kept open until the client or the server closes them.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 3001,
        path: str = "/voice-chat",
        max_connections: int = 100,
        max_message_bytes: int = 2**20,
    ) -> None:
        """Initialize WebSocket transport.

        Args:
            host: Bind host address
            port: Bind port (0 picks a free port)
            path: Request path accepted for upgrades
            max_connections: Maximum concurrent connections
            max_message_bytes: Maximum inbound message size
        """
        self._host = host
        self._port = port
        self._path = path
        self._max_connections = max_connections
        self._max_message_bytes = max_message_bytes
        self._server: Any = None  # websockets Server
        self._running = False
        self._active_connections = 0
        self._connection_queue: asyncio.Queue[WebSocketConnection] = asyncio.Queue()

        logger.info(
            "WebSocket transport initialized",
            extra={"host": host, "port": port, "path": path, "max_connections": max_connections},
        )

    @property
    def transport_type(self) -> str:
        """Transport type identifier."""
        return "websocket"

    @property
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        return self._running

    @property
    def path(self) -> str:
        """Request path accepted for upgrades."""
        return self._path

    @property
    def bound_port(self) -> int:
        """Port actually bound (differs from the configured one when it is 0)."""
        if self._server is None:
            return self._port
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def active_connections(self) -> int:
        """Number of currently open client connections."""
        return self._active_connections

    async def start(self) -> None:
        """Start the WebSocket server.

        Raises:
            RuntimeError: If the transport is already running or fails to start
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("WebSocket transport is already running")

        logger.info("Starting WebSocket server", extra={"host": self._host, "port": self._port})

        try:
            self._server = await serve(
                self._handle_connection,
                self._host,
                self._port,
                max_size=self._max_message_bytes,
            )
            self._running = True

            logger.info(
                "WebSocket server started",
                extra={"host": self._host, "port": self.bound_port, "path": self._path},
            )

        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.error("Failed to start WebSocket server", extra={"error": str(e)})
            raise RuntimeError(f"Failed to start WebSocket transport: {e}") from e

    async def stop(self) -> None:
        """Stop the WebSocket server, closing all open connections."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")

        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("WebSocket server stopped")

    async def accept_connection(self) -> TransportConnection:
        """Block until a new client connection is established.

        Raises:
            RuntimeError: If the transport is not running
        """
        if not self._running:
            raise RuntimeError("WebSocket transport is not running")

        return await self._connection_queue.get()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Handle an incoming WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        request_path = websocket.request.path if websocket.request else ""
        if request_path.split("?", 1)[0] != self._path:
            logger.warning(
                "Rejecting connection on unknown path",
                extra={"path": request_path, "remote": websocket.remote_address},
            )
            await websocket.close(code=CLOSE_POLICY_VIOLATION, reason="Unknown endpoint")
            return

        if self._active_connections >= self._max_connections:
            logger.warning(
                "Rejecting connection, server at capacity",
                extra={"active": self._active_connections, "remote": websocket.remote_address},
            )
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server at capacity")
            return

        connection = WebSocketConnection(websocket)
        self._active_connections += 1

        logger.info("New WebSocket connection", extra={"remote": connection.remote_address})

        await self._connection_queue.put(connection)

        # Keep connection alive until closed
        try:
            await websocket.wait_closed()
        finally:
            self._active_connections -= 1
            logger.debug(
                "WebSocket connection closed", extra={"remote": connection.remote_address}
            )
