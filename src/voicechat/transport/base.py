"""Base transport abstraction for client connections.

Defines the interface that transport implementations must provide so the
session and routing layers never touch a concrete socket type.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class TransportConnection(ABC):
    """One duplex client connection.

    Inbound frames are either text (structured control payloads) or bytes
    (raw audio). Outbound frames are always text.
    """

    @abstractmethod
    def receive_frames(self) -> AsyncIterator[str | bytes]:
        """Receive raw frames from the client until the connection closes.

        Yields:
            str for text frames, bytes for binary frames

        Raises:
            TransportError: If the connection fails abnormally
        """
        pass

    @abstractmethod
    async def send_text(self, payload: str) -> None:
        """Send one text frame to the client.

        Args:
            payload: Serialized control frame

        Raises:
            TransportError: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Clean connection shutdown. Calling it twice is a no-op."""
        pass

    @property
    @abstractmethod
    def remote_address(self) -> str:
        """Peer address for logging."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the connection is still open."""
        pass


class Transport(ABC):
    """Base transport implementation.

    Manages the lifecycle of a listening transport and hands accepted
    connections to the server loop.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport server.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport server and release resources."""
        pass

    @abstractmethod
    async def accept_connection(self) -> TransportConnection:
        """Block until a new client connection is established.

        Raises:
            RuntimeError: If the transport is not running
        """
        pass

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'websocket')."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        pass
