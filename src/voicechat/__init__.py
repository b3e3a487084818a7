"""Realtime voice/text conversation gateway.

This package provides the WebSocket transport, session management, and
message routing that connect a voice chat client to a conversational model
and pluggable speech collaborators.
"""

__version__ = "0.1.0"
