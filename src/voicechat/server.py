"""Gateway server with WebSocket transport and model/speech collaborators.

Main server implementation that:
1. Starts the WebSocket transport
2. Provides HTTP health and metadata endpoints
3. Accepts client connections and creates one session per connection
4. Routes control and audio frames to the session
5. Evicts idle sessions on a fixed cadence
"""

import argparse
import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from aiohttp.web import Application, AppRunner, TCPSite
from dotenv import load_dotenv
from openai import AsyncOpenAI

from voicechat.collaborators import (
    EchoTranscriptCollaborator,
    OpenAITranscriptCollaborator,
    PlaceholderSpeechToText,
    PlaceholderTextToSpeech,
    TranscriptCollaborator,
    create_openai_client,
)
from voicechat.config import ServerConfig
from voicechat.errors import CollaboratorError, TransportError
from voicechat.health import setup_health_routes
from voicechat.registry import SessionRegistry
from voicechat.router import MessageRouter
from voicechat.transport.base import TransportConnection
from voicechat.transport.protocol import ConnectedMessage, ErrorMessage, encode_frame
from voicechat.transport.websocket_transport import WebSocketTransport
from voicechat.utils.logging import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "configs" / "voicechat.yaml"


async def handle_connection(
    connection: TransportConnection,
    registry: SessionRegistry,
    router: MessageRouter,
) -> None:
    """Handle a single client connection from handshake to teardown.

    Creates the session, greets the client with its session id, then routes
    frames until the connection closes.

    Args:
        connection: Newly accepted connection
        registry: Session registry
        router: Message router
    """
    try:
        session = await registry.create(connection)
    except CollaboratorError as e:
        logger.error(
            "Failed to initialize session",
            extra={"remote": connection.remote_address, "error": str(e)},
        )
        try:
            await connection.send_text(
                encode_frame(ErrorMessage(message="Failed to initialize voice chat session"))
            )
        except TransportError:
            pass
        await connection.close()
        return

    try:
        await connection.send_text(encode_frame(ConnectedMessage(session_id=session.session_id)))
    except TransportError as e:
        logger.warning(
            "Client left before session greeting",
            extra={"session_id": session.session_id, "error": str(e)},
        )
        await registry.remove(session.session_id)
        return

    await router.serve(session)


class VoiceChatServer:
    """Gateway server lifecycle.

    Thread-safety: This class is NOT thread-safe. Use from a single async task.
    """

    def __init__(
        self,
        config: ServerConfig,
        transcript_factory: Callable[[], TranscriptCollaborator] | None = None,
    ) -> None:
        """Initialize server.

        Args:
            config: Server configuration
            transcript_factory: Override for the per-session transcript
                collaborator (defaults to the configured provider)
        """
        self.config = config
        self._openai_client: AsyncOpenAI | None = None

        if transcript_factory is None:
            transcript_factory = self._build_transcript_factory()

        self.registry = SessionRegistry.from_config(
            config,
            transcript_factory=transcript_factory,
            speech_to_text=PlaceholderSpeechToText(config.speech.placeholder_transcript),
            text_to_speech=PlaceholderTextToSpeech(
                bytes_per_char=config.speech.tts_bytes_per_char,
                max_bytes=config.speech.tts_max_bytes,
            ),
        )
        self.router = MessageRouter(self.registry, inbox_size=config.session.inbox_size)

        ws_config = config.websocket
        self.transport = WebSocketTransport(
            host=ws_config.host,
            port=ws_config.port,
            path=ws_config.path,
            max_connections=ws_config.max_connections,
            max_message_bytes=ws_config.max_message_bytes,
        )

        self._health_runner: AppRunner | None = None
        self._accept_task: asyncio.Task[None] | None = None
        self._connection_tasks: set[asyncio.Task[None]] = set()

        logger.info(
            "Gateway server initialized",
            extra={"llm_provider": config.llm.provider, "llm_model": config.llm.model},
        )

    def _build_transcript_factory(self) -> Callable[[], TranscriptCollaborator]:
        llm_config = self.config.llm

        if llm_config.provider == "echo":
            logger.warning("Using echo transcript collaborator, replies mirror user input")
            return EchoTranscriptCollaborator

        client = create_openai_client(llm_config)
        self._openai_client = client

        def factory() -> TranscriptCollaborator:
            return OpenAITranscriptCollaborator(
                client,
                model=llm_config.model,
                temperature=llm_config.temperature,
                max_tokens=llm_config.max_tokens,
            )

        return factory

    async def start(self) -> None:
        """Start transport, health endpoints, idle sweeper and accept loop."""
        await self.transport.start()

        if self.config.health.enabled:
            health_app = Application()
            setup_health_routes(health_app, self.registry, self.transport.path)

            self._health_runner = AppRunner(health_app)
            await self._health_runner.setup()
            site = TCPSite(self._health_runner, self.config.health.host, self.config.health_port)
            await site.start()
            logger.info("Health check server started", extra={"port": self.config.health_port})

        self.registry.start()
        self._accept_task = asyncio.create_task(self._accept_loop())

        logger.info(
            "Gateway server ready",
            extra={"port": self.transport.bound_port, "path": self.transport.path},
        )

    async def _accept_loop(self) -> None:
        try:
            while True:
                connection = await self.transport.accept_connection()
                task = asyncio.create_task(self._run_connection(connection))
                self._connection_tasks.add(task)
                task.add_done_callback(self._connection_tasks.discard)
        except asyncio.CancelledError:
            logger.info("Accept loop cancelled")

    async def _run_connection(self, connection: TransportConnection) -> None:
        try:
            await handle_connection(connection, self.registry, self.router)
        except Exception as e:
            logger.exception(
                "Unexpected error in connection handler",
                extra={"remote": connection.remote_address, "error": str(e)},
            )
            await connection.close()

    async def stop(self) -> None:
        """Stop accepting, close every session and release resources."""
        logger.info("Shutting down gateway server")

        if self._accept_task is not None:
            self._accept_task.cancel()
            try:
                await self._accept_task
            except asyncio.CancelledError:
                pass
            self._accept_task = None

        await self.registry.stop()
        await self.transport.stop()
        logger.info("WebSocket transport stopped")

        if self._connection_tasks:
            logger.info(
                "Waiting for connections to finish", extra={"count": len(self._connection_tasks)}
            )
            _, pending = await asyncio.wait(
                self._connection_tasks, timeout=self.config.graceful_shutdown_timeout_s
            )
            for task in pending:
                task.cancel()

        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
            logger.info("Health check server stopped")

        if self._openai_client is not None:
            await self._openai_client.close()

        logger.info("Gateway server stopped")


async def start_server(config_path: Path) -> None:
    """Load configuration and run the gateway until cancelled.

    Args:
        config_path: Path to the YAML configuration file
    """
    config = ServerConfig.from_yaml_with_defaults(config_path)
    setup_logging(config.log_level, json_format=config.json_logs)

    logger.info("Loaded configuration", extra={"config_path": str(config_path)})

    server = VoiceChatServer(config)
    await server.start()
    logger.info(
        f"WebSocket endpoint: ws://{config.websocket.host}:{server.transport.bound_port}"
        f"{config.websocket.path}"
    )

    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server loop cancelled")
    finally:
        await server.stop()


def main() -> None:
    """Entry point for the gateway server."""
    parser = argparse.ArgumentParser(description="Voice chat gateway server")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to gateway config YAML file",
    )
    args = parser.parse_args()

    # Environment overrides may come from a local .env file
    load_dotenv()

    try:
        asyncio.run(start_server(args.config))
    except KeyboardInterrupt:
        logger.info("Gateway server interrupted")


if __name__ == "__main__":
    main()
