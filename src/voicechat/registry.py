"""Process-wide session registry.

Maps session ids to live sessions, owns session creation and teardown, and
runs the periodic idle sweep. The map is only touched from the event loop;
creation inserts without suspending between the id check and the insert,
and removal is idempotent so the connection-close handler and the sweep can
race on the same id safely.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Iterator

from voicechat.audio.buffer import DEFAULT_MAX_BYTES
from voicechat.collaborators.base import SpeechToText, TextToSpeech, TranscriptCollaborator
from voicechat.config import DEFAULT_APOLOGY_TEXT, ServerConfig
from voicechat.errors import CollaboratorError, SessionNotFound
from voicechat.session import VoiceSession
from voicechat.transport.base import TransportConnection

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_S = 30 * 60
DEFAULT_SWEEP_INTERVAL_S = 5 * 60


class SessionRegistry:
    """Registry of live sessions keyed by session id.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(
        self,
        transcript_factory: Callable[[], TranscriptCollaborator],
        speech_to_text: SpeechToText,
        text_to_speech: TextToSpeech,
        system_prompt: str = "",
        idle_timeout_s: float = DEFAULT_IDLE_TIMEOUT_S,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        collaborator_timeout_s: float = 30.0,
        close_timeout_s: float = 5.0,
        apology_text: str = DEFAULT_APOLOGY_TEXT,
        max_turn_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        """Initialize registry.

        Args:
            transcript_factory: Builds a fresh transcript collaborator per session
            speech_to_text: Speech-to-text collaborator shared by all sessions
            text_to_speech: Text-to-speech collaborator shared by all sessions
            system_prompt: Prompt each transcript collaborator is initialized with
            idle_timeout_s: Inactivity after which a session is evicted
            sweep_interval_s: Cadence of the idle sweep
            collaborator_timeout_s: Upper bound on each collaborator call
            close_timeout_s: Upper bound on closing one connection
            apology_text: Reply substituted when the model call fails
            max_turn_bytes: Maximum buffered audio per turn
        """
        self._transcript_factory = transcript_factory
        self._speech_to_text = speech_to_text
        self._text_to_speech = text_to_speech
        self._system_prompt = system_prompt
        self.idle_timeout_s = idle_timeout_s
        self.sweep_interval_s = sweep_interval_s
        self._collaborator_timeout_s = collaborator_timeout_s
        self._close_timeout_s = close_timeout_s
        self._apology_text = apology_text
        self._max_turn_bytes = max_turn_bytes

        self._sessions: dict[str, VoiceSession] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        transcript_factory: Callable[[], TranscriptCollaborator],
        speech_to_text: SpeechToText,
        text_to_speech: TextToSpeech,
    ) -> "SessionRegistry":
        """Build a registry from server configuration."""
        return cls(
            transcript_factory=transcript_factory,
            speech_to_text=speech_to_text,
            text_to_speech=text_to_speech,
            system_prompt=config.llm.system_prompt,
            idle_timeout_s=config.session.idle_timeout_seconds,
            sweep_interval_s=config.session.sweep_interval_seconds,
            collaborator_timeout_s=config.collaborator_timeout_seconds,
            close_timeout_s=config.session.close_timeout_seconds,
            apology_text=config.llm.apology_text,
            max_turn_bytes=config.session.max_turn_bytes,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

    @property
    def active_count(self) -> int:
        """Number of sessions not yet closing."""
        return sum(1 for session in self._sessions.values() if not session.is_closing)

    def _new_session_id(self) -> str:
        session_id = f"session_{uuid.uuid4().hex}"
        while session_id in self._sessions:
            session_id = f"session_{uuid.uuid4().hex}"
        return session_id

    async def create(self, connection: TransportConnection) -> VoiceSession:
        """Create and register a session for a newly accepted connection.

        Args:
            connection: Connection the session will own

        Returns:
            The registered session, in the IDLE phase

        Raises:
            CollaboratorError: If the transcript collaborator fails to initialize
        """
        transcript_collaborator = self._transcript_factory()
        try:
            await asyncio.wait_for(
                transcript_collaborator.initialize(self._system_prompt),
                timeout=self._collaborator_timeout_s,
            )
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError("transcript", f"initialization failed: {e}") from e

        # No suspension between the id check and the insert.
        session_id = self._new_session_id()
        session = VoiceSession(
            session_id=session_id,
            connection=connection,
            transcript_collaborator=transcript_collaborator,
            speech_to_text=self._speech_to_text,
            text_to_speech=self._text_to_speech,
            collaborator_timeout_s=self._collaborator_timeout_s,
            apology_text=self._apology_text,
            max_turn_bytes=self._max_turn_bytes,
            close_timeout_s=self._close_timeout_s,
        )
        self._sessions[session_id] = session

        logger.info(
            "Session created",
            extra={
                "session_id": session_id,
                "remote": connection.remote_address,
                "active_sessions": len(self._sessions),
            },
        )
        return session

    def get(self, session_id: str) -> VoiceSession:
        """Look up a live session.

        Raises:
            SessionNotFound: If the id is unknown or the session is closing
        """
        session = self._sessions.get(session_id)
        if session is None or session.is_closing:
            raise SessionNotFound(session_id)
        return session

    async def remove(self, session_id: str) -> bool:
        """Close a session and drop it from the registry.

        Idempotent: unknown ids and sessions already being removed are a
        no-op.

        Returns:
            True if this call performed the removal
        """
        session = self._sessions.get(session_id)
        if session is None or session.is_closing:
            return False

        try:
            await session.close()
        finally:
            self._sessions.pop(session_id, None)

        logger.info(
            "Session removed",
            extra={"session_id": session_id, "active_sessions": len(self._sessions)},
        )
        return True

    async def sweep(self, now: float | None = None) -> list[str]:
        """Evict every session idle for longer than the idle timeout.

        Connections are closed concurrently; a failure on one session is
        logged and does not stop the sweep.

        Args:
            now: Monotonic timestamp to measure idleness against

        Returns:
            Ids of the evicted sessions
        """
        current = time.monotonic() if now is None else now
        stale = [
            session.session_id
            for session in list(self._sessions.values())
            if not session.is_closing and session.idle_seconds(current) > self.idle_timeout_s
        ]

        if not stale:
            logger.debug("Idle sweep found nothing to evict", extra={"active": len(self)})
            return []

        for session_id in stale:
            logger.info("Cleaning up inactive session", extra={"session_id": session_id})

        results = await asyncio.gather(
            *(self.remove(session_id) for session_id in stale), return_exceptions=True
        )

        evicted: list[str] = []
        for session_id, result in zip(stale, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to evict idle session",
                    extra={"session_id": session_id, "error": str(result)},
                )
                # The entry must not outlive a failed close.
                self._sessions.pop(session_id, None)
                continue
            evicted.append(session_id)

        logger.info(
            "Idle sweep complete",
            extra={"evicted": len(evicted), "active_sessions": len(self._sessions)},
        )
        return evicted

    async def _sweep_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.sweep_interval_s)
                try:
                    await self.sweep()
                except Exception as e:
                    logger.exception("Idle sweep failed", extra={"error": str(e)})
        except asyncio.CancelledError:
            # Clean shutdown
            pass

    def start(self) -> None:
        """Start the periodic idle sweep."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return

        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Idle sweeper started",
            extra={"interval_s": self.sweep_interval_s, "idle_timeout_s": self.idle_timeout_s},
        )

    async def stop(self) -> None:
        """Stop the idle sweep and close every remaining session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        remaining = list(self._sessions)
        if remaining:
            logger.info("Closing remaining sessions", extra={"count": len(remaining)})
            await asyncio.gather(
                *(self.remove(session_id) for session_id in remaining), return_exceptions=True
            )
