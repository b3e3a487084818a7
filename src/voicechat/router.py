"""Message routing between a connection and its session.

Every inbound frame is decoded once (see transport.protocol) and then either
answered immediately or queued on the session's inbox:

- ping → pong, immediately, whatever the turn phase
- interrupt → pending inbox entries dropped, session interrupted,
  `interrupted` acknowledged, immediately
- audio chunks, audio_start, audio_end, text_message → inbox, processed
  in arrival order by one worker task per session

The inbox is what keeps a session's mutating operations strictly ordered:
a text message that arrives while a spoken turn is waiting on the model is
processed after that turn, never alongside it. Sessions never wait on each
other.
"""

import asyncio
import logging

from voicechat.errors import ProtocolError, SessionNotFound, TransportError
from voicechat.registry import SessionRegistry
from voicechat.session import VoiceSession
from voicechat.transport.protocol import (
    AudioChunkFrame,
    AudioEndMessage,
    AudioStartMessage,
    ControlFrame,
    ErrorMessage,
    InboundFrame,
    InterruptedMessage,
    InterruptMessage,
    PingMessage,
    PongMessage,
    ServerMessage,
    TextInputMessage,
    UnknownFrame,
    audio_response,
    decode_frame,
    encode_frame,
    text_response,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "Failed to process message"


class MessageRouter:
    """Routes frames between connections and sessions.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(self, registry: SessionRegistry, inbox_size: int = 1000) -> None:
        """Initialize router.

        Args:
            registry: Registry used to resolve session ids
            inbox_size: Pending frames kept per session before new ones are dropped
        """
        self._registry = registry
        self._inbox_size = inbox_size
        self._inboxes: dict[str, asyncio.Queue[InboundFrame]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}

    def attach(self, session: VoiceSession) -> None:
        """Create the session's inbox and start its worker."""
        session_id = session.session_id
        if session_id in self._inboxes:
            return

        inbox: asyncio.Queue[InboundFrame] = asyncio.Queue(maxsize=self._inbox_size)
        self._inboxes[session_id] = inbox
        self._workers[session_id] = asyncio.create_task(self._inbox_worker(session_id, inbox))

    async def detach(self, session_id: str) -> None:
        """Stop the session's worker and drop its inbox."""
        self._inboxes.pop(session_id, None)
        worker = self._workers.pop(session_id, None)
        if worker is None:
            return

        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def wait_idle(self, session_id: str) -> None:
        """Wait until every queued frame of a session has been processed."""
        inbox = self._inboxes.get(session_id)
        if inbox is not None:
            await inbox.join()

    async def serve(self, session: VoiceSession) -> None:
        """Route frames for one connection until it closes.

        The session is removed from the registry on the way out, whatever
        ended the connection.
        """
        session_id = session.session_id
        self.attach(session)

        try:
            async for raw in session.connection.receive_frames():
                await self.dispatch(session_id, raw)
        except TransportError as e:
            logger.warning(
                "Connection lost",
                extra={"session_id": session_id, "error": str(e)},
            )
        finally:
            logger.info("WebSocket connection closed", extra={"session_id": session_id})
            await self.detach(session_id)
            await self._registry.remove(session_id)

    async def dispatch(self, session_id: str, raw: str | bytes) -> None:
        """Decode one inbound frame and route it.

        Never raises for frame-level problems: malformed frames are answered
        with an error frame, unknown types and unknown sessions are dropped.
        """
        try:
            session = self._registry.get(session_id)
        except SessionNotFound:
            logger.debug("Dropping frame for unknown session", extra={"session_id": session_id})
            return

        session.touch()

        try:
            frame = decode_frame(raw)
        except ProtocolError as e:
            logger.error(
                "Error handling WebSocket JSON message",
                extra={"session_id": session_id, "error": str(e)},
            )
            await self._send(session, ErrorMessage(message=GENERIC_ERROR_TEXT))
            return

        if isinstance(frame, UnknownFrame):
            logger.warning(
                "Unknown message type",
                extra={"session_id": session_id, "type": frame.type},
            )
            return

        if isinstance(frame, ControlFrame):
            if isinstance(frame.message, PingMessage):
                await self._send(session, PongMessage())
                return
            if isinstance(frame.message, InterruptMessage):
                self._interrupt(session)
                await self._send(session, InterruptedMessage())
                return

        self._enqueue(session, frame)

    def _enqueue(self, session: VoiceSession, frame: InboundFrame) -> None:
        inbox = self._inboxes.get(session.session_id)
        if inbox is None:
            logger.warning(
                "Dropping frame for session without inbox",
                extra={"session_id": session.session_id},
            )
            return

        try:
            inbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "Session inbox full, dropping frame",
                extra={"session_id": session.session_id, "inbox_size": self._inbox_size},
            )

    def _interrupt(self, session: VoiceSession) -> None:
        logger.info("Interruption detected", extra={"session_id": session.session_id})

        # Nothing queued before the interrupt may start once it is handled.
        dropped = 0
        inbox = self._inboxes.get(session.session_id)
        if inbox is not None:
            while not inbox.empty():
                inbox.get_nowait()
                inbox.task_done()
                dropped += 1

        if dropped:
            logger.info(
                "Dropped queued frames on interrupt",
                extra={"session_id": session.session_id, "dropped": dropped},
            )
        session.interrupt()

    async def _inbox_worker(self, session_id: str, inbox: asyncio.Queue[InboundFrame]) -> None:
        try:
            while True:
                frame = await inbox.get()
                try:
                    await self._process(session_id, frame)
                except Exception as e:
                    logger.exception(
                        "Error processing frame",
                        extra={"session_id": session_id, "error": str(e)},
                    )
                finally:
                    inbox.task_done()
        except asyncio.CancelledError:
            # Clean shutdown
            pass

    async def _process(self, session_id: str, frame: InboundFrame) -> None:
        try:
            session = self._registry.get(session_id)
        except SessionNotFound:
            return

        if isinstance(frame, AudioChunkFrame):
            session.append_audio(frame.data)
            return

        if not isinstance(frame, ControlFrame):
            return

        message = frame.message
        if isinstance(message, AudioStartMessage):
            session.begin_turn()

        elif isinstance(message, AudioEndMessage):
            logger.info("Audio stream ended", extra={"session_id": session_id})
            result = await session.complete_turn()
            if result is not None:
                await self._send(session, audio_response(result.reply_text, result.reply_audio))

        elif isinstance(message, TextInputMessage):
            result = await session.send_text(message.text)
            await self._send(session, text_response(result.reply_text, result.reply_audio))

    async def _send(self, session: VoiceSession, message: ServerMessage) -> None:
        """Send a server message; a transport failure closes the connection."""
        try:
            await session.connection.send_text(encode_frame(message))
        except TransportError as e:
            logger.warning(
                "Failed to send message, closing connection",
                extra={"session_id": session.session_id, "type": message.type, "error": str(e)},
            )
            await session.connection.close()
