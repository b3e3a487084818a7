"""WebSocket CLI client for exercising the voice chat gateway.

Provides a command-line interface for connecting to the gateway, sending
typed messages or a simulated spoken turn, and printing the replies.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Annotated

import websockets
from pydantic import Field, TypeAdapter, ValidationError
from websockets.asyncio.client import ClientConnection

from voicechat.audio.encoding import decode_audio
from voicechat.transport.protocol import (
    AudioEndMessage,
    AudioResponseMessage,
    AudioStartMessage,
    ConnectedMessage,
    ErrorMessage,
    InterruptedMessage,
    InterruptMessage,
    PingMessage,
    PongMessage,
    ServerMessage,
    TextInputMessage,
    TextResponseMessage,
)

logger = logging.getLogger(__name__)

_server_message_adapter: TypeAdapter[ServerMessage] = TypeAdapter(
    Annotated[ServerMessage, Field(discriminator="type")]
)

HELP_TEXT = """
Commands:
  /speak   - Send a simulated spoken turn (audio_start, audio, audio_end)
  /interrupt - Interrupt the assistant
  /ping    - Check the connection
  /quit    - Exit client
  /help    - Show this help
"""


class CLIClient:
    """WebSocket CLI client for gateway communication."""

    def __init__(self, server_url: str, verbose: bool = False) -> None:
        """Initialize CLI client.

        Args:
            server_url: WebSocket server URL (e.g., ws://localhost:3001/voice-chat)
            verbose: Enable verbose logging
        """
        self.server_url = server_url
        self.verbose = verbose
        self.session_id: str | None = None
        self.running = True

        level = logging.DEBUG if verbose else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    async def send_text(self, websocket: ClientConnection, text: str) -> None:
        """Send a typed user message.

        Args:
            websocket: WebSocket connection
            text: Message text
        """
        await websocket.send(TextInputMessage(text=text).model_dump_json(by_alias=True))
        logger.debug(f"Sent: {text}")

    async def send_spoken_turn(self, websocket: ClientConnection, chunks: int = 3) -> None:
        """Send a simulated spoken turn made of random binary chunks.

        Args:
            websocket: WebSocket connection
            chunks: Number of audio chunks to stream
        """
        await websocket.send(AudioStartMessage().model_dump_json())
        for _ in range(chunks):
            await websocket.send(os.urandom(3200))
        await websocket.send(AudioEndMessage().model_dump_json())
        logger.info(f"Sent spoken turn ({chunks} chunks)")

    async def send_control(self, websocket: ClientConnection, command: str) -> None:
        """Send a control message (interrupt or ping).

        Args:
            websocket: WebSocket connection
            command: "interrupt" or "ping"
        """
        message = InterruptMessage() if command == "interrupt" else PingMessage()
        await websocket.send(message.model_dump_json())
        logger.info(f"Sent control: {command}")

    def handle_message(self, message_data: str | bytes) -> None:
        """Handle incoming message from server.

        Args:
            message_data: Raw JSON message from server
        """
        try:
            message = _server_message_adapter.validate_json(message_data)
        except ValidationError as e:
            logger.warning(f"Unrecognized server message: {e.error_count()} error(s)")
            return

        if isinstance(message, ConnectedMessage):
            self.session_id = message.session_id
            print(f"\n{message.message} (session {message.session_id})")

        elif isinstance(message, AudioResponseMessage):
            audio = decode_audio(message.audio_data)
            print(f"\nAssistant (spoken): {message.transcript}  [{len(audio)} audio bytes]")

        elif isinstance(message, TextResponseMessage):
            audio = decode_audio(message.audio_data)
            print(f"\nAssistant: {message.text}  [{len(audio)} audio bytes]")

        elif isinstance(message, InterruptedMessage):
            print(f"\n{message.message}")

        elif isinstance(message, ErrorMessage):
            logger.error(f"Server error: {message.message}")
            print(f"\nError: {message.message}")

        elif isinstance(message, PongMessage):
            print("\npong")

    async def receive_messages(self, websocket: ClientConnection) -> None:
        """Receive and handle messages from server.

        Args:
            websocket: WebSocket connection
        """
        try:
            async for message in websocket:
                self.handle_message(message)
        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            self.running = False

    async def input_loop(self, websocket: ClientConnection) -> None:
        """Handle user input from stdin.

        Args:
            websocket: WebSocket connection
        """
        print("\n" + "=" * 60)
        print("Voice Chat CLI Client")
        print("=" * 60)
        print(HELP_TEXT)
        print("Enter a message, or a command (starting with /):\n")

        loop = asyncio.get_running_loop()

        while self.running:
            try:
                text = await loop.run_in_executor(None, input, "You: ")
            except EOFError:
                self.running = False
                break

            text = text.strip()
            if not text:
                continue

            if not text.startswith("/"):
                await self.send_text(websocket, text)
                continue

            command = text[1:].lower()
            if command == "quit":
                self.running = False
                print("\nGoodbye!")
                await websocket.close()
                break
            elif command == "help":
                print(HELP_TEXT)
            elif command == "speak":
                await self.send_spoken_turn(websocket)
            elif command in ("interrupt", "ping"):
                await self.send_control(websocket, command)
            else:
                print(f"Unknown command: {command}")
                print("Type /help for available commands")

    async def run(self) -> None:
        """Run the CLI client."""
        try:
            async with websockets.connect(self.server_url) as websocket:
                logger.info(f"Connected to {self.server_url}")

                def signal_handler() -> None:
                    self.running = False

                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, signal_handler)

                try:
                    await asyncio.gather(
                        self.input_loop(websocket),
                        self.receive_messages(websocket),
                    )
                finally:
                    for sig in (signal.SIGINT, signal.SIGTERM):
                        loop.remove_signal_handler(sig)

        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error(f"Client error: {e}")
            sys.exit(1)


def main() -> None:
    """Main entry point for CLI client."""
    parser = argparse.ArgumentParser(description="WebSocket CLI client for the voice chat gateway")
    parser.add_argument(
        "--url",
        type=str,
        default="ws://localhost:3001/voice-chat",
        help="WebSocket server URL (default: ws://localhost:3001/voice-chat)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    try:
        asyncio.run(CLIClient(args.url, verbose=args.verbose).run())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
