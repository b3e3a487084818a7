"""Unit tests for the CLI WebSocket client."""

import json
from unittest.mock import AsyncMock, patch

import pytest
import websockets

from voicechat.client.cli_client import CLIClient
from voicechat.transport.protocol import (
    ConnectedMessage,
    ErrorMessage,
    InterruptedMessage,
    PongMessage,
    audio_response,
    encode_frame,
    text_response,
)

SERVER_URL = "ws://localhost:3001/voice-chat"


def sent_frames(websocket: AsyncMock) -> list[str | bytes]:
    return [call.args[0] for call in websocket.send.call_args_list]


class TestCLIClientInit:
    """Test client construction."""

    def test_init(self) -> None:
        """Test initial client state."""
        client = CLIClient(SERVER_URL, verbose=True)

        assert client.server_url == SERVER_URL
        assert client.verbose is True
        assert client.session_id is None
        assert client.running is True


class TestOutboundMessages:
    """Test frames the client sends."""

    @pytest.mark.asyncio
    async def test_send_text(self) -> None:
        """Test typed text becomes a text_message frame."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()

        await client.send_text(mock_websocket, "Tell me about the RV400")

        mock_websocket.send.assert_called_once()
        sent_data = json.loads(mock_websocket.send.call_args[0][0])
        assert sent_data == {"type": "text_message", "text": "Tell me about the RV400"}

    @pytest.mark.asyncio
    async def test_send_spoken_turn(self) -> None:
        """Test a spoken turn is audio_start, binary chunks, then audio_end."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()

        await client.send_spoken_turn(mock_websocket, chunks=2)

        frames = sent_frames(mock_websocket)
        assert len(frames) == 4
        assert json.loads(frames[0]) == {"type": "audio_start"}
        assert all(isinstance(chunk, bytes) and len(chunk) == 3200 for chunk in frames[1:3])
        assert json.loads(frames[3]) == {"type": "audio_end"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["interrupt", "ping"])
    async def test_send_control(self, command: str) -> None:
        """Test control commands map to their wire message."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()

        await client.send_control(mock_websocket, command)

        mock_websocket.send.assert_called_once()
        assert json.loads(mock_websocket.send.call_args[0][0]) == {"type": command}


class TestHandleMessage:
    """Test rendering of server frames."""

    def test_connected(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test the greeting records the session id."""
        client = CLIClient(SERVER_URL)

        client.handle_message(encode_frame(ConnectedMessage(session_id="session_abc")))

        assert client.session_id == "session_abc"
        out = capsys.readouterr().out
        assert "Connected to Revolt Motors voice assistant" in out
        assert "session_abc" in out

    def test_audio_response(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test a spoken reply prints its transcript and audio size."""
        client = CLIClient(SERVER_URL)

        reply = audio_response("The RV400 has a 150 km range", b"\x00\x01")
        client.handle_message(encode_frame(reply))

        out = capsys.readouterr().out
        assert "Assistant (spoken): The RV400 has a 150 km range" in out
        assert "[2 audio bytes]" in out

    def test_text_response(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test a typed reply prints its text and audio size."""
        client = CLIClient(SERVER_URL)

        client.handle_message(encode_frame(text_response("Hello!", b"abc")))

        out = capsys.readouterr().out
        assert "Assistant: Hello!" in out
        assert "[3 audio bytes]" in out

    def test_interrupted(self, capsys: pytest.CaptureFixture[str]) -> None:
        client = CLIClient(SERVER_URL)

        client.handle_message(encode_frame(InterruptedMessage()))

        assert "AI speech interrupted" in capsys.readouterr().out

    def test_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        client = CLIClient(SERVER_URL)

        client.handle_message(encode_frame(ErrorMessage(message="Failed to process message")))

        assert "Error: Failed to process message" in capsys.readouterr().out

    def test_pong(self, capsys: pytest.CaptureFixture[str]) -> None:
        client = CLIClient(SERVER_URL)

        client.handle_message(encode_frame(PongMessage()))

        assert "pong" in capsys.readouterr().out

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps({"type": "unknown", "data": "test"}),
            json.dumps({"type": "connected"}),
        ],
        ids=["invalid-json", "unknown-type", "missing-field"],
    )
    def test_invalid_frame_ignored(self, raw: str, capsys: pytest.CaptureFixture[str]) -> None:
        """Test frames that fail validation are skipped without raising."""
        client = CLIClient(SERVER_URL)

        client.handle_message(raw)

        assert client.session_id is None
        assert capsys.readouterr().out == ""


class TestReceiveAndInput:
    """Test the receive and input loops."""

    @pytest.mark.asyncio
    async def test_receive_messages(self) -> None:
        """Test every received frame is handled, then the client stops."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()
        mock_websocket.__aiter__.return_value = iter(
            [
                encode_frame(ConnectedMessage(session_id="session_123")),
                encode_frame(PongMessage()),
            ]
        )

        await client.receive_messages(mock_websocket)

        assert client.session_id == "session_123"
        assert client.running is False

    @pytest.mark.asyncio
    async def test_receive_messages_connection_closed(self) -> None:
        """Test a server-side close ends the loop quietly."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()
        mock_websocket.__aiter__.side_effect = websockets.exceptions.ConnectionClosed(None, None)

        await client.receive_messages(mock_websocket)

        assert client.running is False

    @pytest.mark.asyncio
    async def test_input_loop_dispatches_commands(self) -> None:
        """Test typed text and commands are sent until /quit."""
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()

        with patch("builtins.input", side_effect=["hello", "", "/ping", "/bogus", "/quit"]):
            await client.input_loop(mock_websocket)

        frames = [json.loads(frame) for frame in sent_frames(mock_websocket)]
        assert frames == [{"type": "text_message", "text": "hello"}, {"type": "ping"}]
        mock_websocket.close.assert_awaited_once()
        assert client.running is False

    @pytest.mark.asyncio
    async def test_input_loop_stops_on_eof(self) -> None:
        client = CLIClient(SERVER_URL)
        mock_websocket = AsyncMock()

        with patch("builtins.input", side_effect=EOFError):
            await client.input_loop(mock_websocket)

        mock_websocket.send.assert_not_called()
        assert client.running is False
