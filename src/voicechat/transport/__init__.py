"""Transport layer for client connections.

Provides the connection abstraction, the wire protocol, and the WebSocket
implementation used by the gateway.
"""

from voicechat.transport.base import Transport, TransportConnection
from voicechat.transport.websocket_transport import WebSocketConnection, WebSocketTransport

__all__ = [
    "Transport",
    "TransportConnection",
    "WebSocketConnection",
    "WebSocketTransport",
]
