"""End-to-end gateway integration tests.

Tests the complete flow over a real WebSocket:
1. Start the gateway on an ephemeral port with the echo model
2. Connect a client and receive the session greeting
3. Exchange typed and spoken turns
4. Verify liveness, interrupt and malformed-frame handling
5. Verify the session is torn down when the client leaves
"""

import asyncio
import base64
import json
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from voicechat.config import ServerConfig
from voicechat.server import VoiceChatServer

pytestmark = pytest.mark.integration

PLACEHOLDER_TRANSCRIPT = "What are the features of Revolt motorcycles?"


@pytest_asyncio.fixture
async def gateway() -> AsyncIterator[VoiceChatServer]:
    """Running gateway bound to an ephemeral port."""
    config = ServerConfig.model_validate(
        {
            "websocket": {"host": "127.0.0.1", "port": 0},
            "health": {"enabled": False},
            "llm": {"provider": "echo"},
        }
    )
    server = VoiceChatServer(config)
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


def gateway_url(server: VoiceChatServer, path: str = "/voice-chat") -> str:
    return f"ws://127.0.0.1:{server.transport.bound_port}{path}"


async def recv_json(ws: ClientConnection, timeout: float = 5.0) -> dict[str, Any]:
    raw = await asyncio.wait_for(ws.recv(), timeout=timeout)
    return json.loads(raw)


async def wait_for_sessions(server: VoiceChatServer, count: int, timeout: float = 5.0) -> None:
    async def _poll() -> None:
        while len(server.registry) != count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_session_greeting(gateway: VoiceChatServer) -> None:
    """Test a new connection is greeted with its session id."""
    async with connect(gateway_url(gateway)) as ws:
        greeting = await recv_json(ws)

        assert greeting["type"] == "connected"
        assert greeting["sessionId"].startswith("session_")
        assert greeting["message"] == "Connected to Revolt Motors voice assistant"
        assert greeting["sessionId"] in gateway.registry


@pytest.mark.asyncio
async def test_text_message_round_trip(gateway: VoiceChatServer) -> None:
    """Test a typed message is answered with text and audio."""
    async with connect(gateway_url(gateway)) as ws:
        await recv_json(ws)

        await ws.send(json.dumps({"type": "text_message", "text": "price?"}))
        reply = await recv_json(ws)

        assert reply["type"] == "text_response"
        assert reply["text"] == "price?"
        assert len(base64.b64decode(reply["audioData"])) == len("price?") * 100


@pytest.mark.asyncio
async def test_spoken_turn_round_trip(gateway: VoiceChatServer) -> None:
    """Test binary audio between audio_start and audio_end yields a spoken reply."""
    async with connect(gateway_url(gateway)) as ws:
        await recv_json(ws)

        await ws.send(json.dumps({"type": "audio_start"}))
        for chunk in (b"AAA", b"BBB", b"CCC"):
            await ws.send(chunk)
        await ws.send(json.dumps({"type": "audio_end"}))
        reply = await recv_json(ws)

        assert reply["type"] == "audio_response"
        assert reply["transcript"] == PLACEHOLDER_TRANSCRIPT
        assert len(base64.b64decode(reply["audioData"])) == len(PLACEHOLDER_TRANSCRIPT) * 100


@pytest.mark.asyncio
async def test_control_frames(gateway: VoiceChatServer) -> None:
    """Test ping, interrupt, unknown and malformed frames."""
    async with connect(gateway_url(gateway)) as ws:
        await recv_json(ws)

        await ws.send(json.dumps({"type": "ping"}))
        assert await recv_json(ws) == {"type": "pong"}

        await ws.send(json.dumps({"type": "interrupt"}))
        assert await recv_json(ws) == {"type": "interrupted", "message": "AI speech interrupted"}

        await ws.send(json.dumps({"type": "dance"}))
        await ws.send("{not json")
        assert await recv_json(ws) == {"type": "error", "message": "Failed to process message"}

        # Still usable after a bad frame
        await ws.send(json.dumps({"type": "ping"}))
        assert await recv_json(ws) == {"type": "pong"}


@pytest.mark.asyncio
async def test_concurrent_sessions_are_isolated(gateway: VoiceChatServer) -> None:
    """Test two clients get distinct sessions and their own replies."""
    async with connect(gateway_url(gateway)) as first, connect(gateway_url(gateway)) as second:
        first_id = (await recv_json(first))["sessionId"]
        second_id = (await recv_json(second))["sessionId"]
        assert first_id != second_id

        await first.send(json.dumps({"type": "text_message", "text": "one"}))
        await second.send(json.dumps({"type": "text_message", "text": "two"}))

        assert (await recv_json(first))["text"] == "one"
        assert (await recv_json(second))["text"] == "two"


@pytest.mark.asyncio
async def test_disconnect_removes_session(gateway: VoiceChatServer) -> None:
    """Test the session is torn down when the client closes."""
    async with connect(gateway_url(gateway)) as ws:
        await recv_json(ws)
        await wait_for_sessions(gateway, 1)

    await wait_for_sessions(gateway, 0)


@pytest.mark.asyncio
async def test_unknown_path_rejected(gateway: VoiceChatServer) -> None:
    """Test connections on another path are closed with a policy violation."""
    async with connect(gateway_url(gateway, "/elsewhere")) as ws:
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(ws.recv(), timeout=5.0)

        assert ws.close_code == 1008

    assert len(gateway.registry) == 0
