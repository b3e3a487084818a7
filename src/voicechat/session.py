"""Per-connection conversation session.

Owns one client connection, the turn buffer for the utterance in flight,
the conversation transcript, and the handles of the collaborators that
turn speech into replies. All turn-processing failures are absorbed here:
callers always get a TurnResult or None, never an exception.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from voicechat.audio.buffer import DEFAULT_MAX_BYTES, BufferOverflowError, TurnBuffer
from voicechat.collaborators.base import (
    ConversationTurn,
    SpeechToText,
    TextToSpeech,
    TranscriptCollaborator,
)
from voicechat.config import DEFAULT_APOLOGY_TEXT
from voicechat.errors import CollaboratorError
from voicechat.transport.base import TransportConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TurnPhase(Enum):
    """Turn state machine states.

    State Transitions:
    - IDLE → RECORDING (audio_start)
    - RECORDING → PROCESSING (audio_end)
    - PROCESSING → RESPONDING (reply synthesized)
    - PROCESSING → IDLE (nothing to reply to)
    - RESPONDING → IDLE (reply handed to the caller)
    - * → IDLE (interrupt, bypasses the table)

    States:
    - IDLE: No turn in progress
    - RECORDING: Client is streaming audio chunks
    - PROCESSING: Utterance complete, awaiting transcript and model reply
    - RESPONDING: Reply delivered to the caller
    """

    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    RESPONDING = "responding"


# Valid state transitions
VALID_TRANSITIONS: dict[TurnPhase, set[TurnPhase]] = {
    TurnPhase.IDLE: {TurnPhase.RECORDING},
    TurnPhase.RECORDING: {TurnPhase.PROCESSING},
    TurnPhase.PROCESSING: {TurnPhase.RESPONDING, TurnPhase.IDLE},
    TurnPhase.RESPONDING: {TurnPhase.IDLE},
}


@dataclass(frozen=True)
class TurnResult:
    """Reply produced for one turn.

    Attributes:
        reply_text: Assistant reply (or the apology text on model failure)
        reply_audio: Synthesized reply audio (empty only if synthesis failed)
        user_text: What the user said or typed
    """

    reply_text: str
    reply_audio: bytes
    user_text: str


@dataclass
class SessionMetrics:
    """Session activity counters."""

    turns_completed: int = 0
    empty_turns: int = 0
    text_messages: int = 0
    interruptions: int = 0
    protocol_violations: int = 0
    collaborator_failures: int = 0
    dropped_chunks: int = 0
    last_turn_latency_ms: float | None = None

    session_start_ts: float = field(default_factory=time.monotonic)
    session_end_ts: float | None = None

    def record_turn(self, latency_ms: float) -> None:
        """Record a completed turn and its end-to-end latency."""
        self.turns_completed += 1
        self.last_turn_latency_ms = latency_ms

    def finalize(self) -> None:
        """Mark session as complete and record end time."""
        self.session_end_ts = time.monotonic()


class VoiceSession:
    """Conversation state bound to one client connection.

    Thread-safety: This class is NOT thread-safe. Use from a single event
    loop. `complete_turn` and `send_text` serialize on a per-session lock so
    two replies never interleave their writes to the transcript.
    """

    def __init__(
        self,
        session_id: str,
        connection: TransportConnection,
        transcript_collaborator: TranscriptCollaborator,
        speech_to_text: SpeechToText,
        text_to_speech: TextToSpeech,
        collaborator_timeout_s: float = 30.0,
        apology_text: str = DEFAULT_APOLOGY_TEXT,
        max_turn_bytes: int = DEFAULT_MAX_BYTES,
        close_timeout_s: float = 5.0,
    ) -> None:
        """Initialize session.

        Args:
            session_id: Unique, immutable session identifier
            connection: Transport connection owned exclusively by this session
            transcript_collaborator: Initialized conversational model handle
            speech_to_text: Utterance transcription collaborator
            text_to_speech: Reply synthesis collaborator
            collaborator_timeout_s: Upper bound on each collaborator call
            apology_text: Reply substituted when the model call fails
            max_turn_bytes: Maximum buffered audio per turn
            close_timeout_s: Upper bound on closing the connection
        """
        self._session_id = session_id
        self.connection = connection
        self.transcript_collaborator = transcript_collaborator
        self.speech_to_text = speech_to_text
        self.text_to_speech = text_to_speech
        self.collaborator_timeout_s = collaborator_timeout_s
        self.apology_text = apology_text
        self.close_timeout_s = close_timeout_s

        self.phase: TurnPhase = TurnPhase.IDLE
        self.interrupt_requested = False
        self.transcript: list[ConversationTurn] = []
        self.buffer = TurnBuffer(max_bytes=max_turn_bytes)
        self.last_activity: float = time.monotonic()
        self.metrics = SessionMetrics()

        self._turn_lock = asyncio.Lock()
        self._closing = False

    @property
    def session_id(self) -> str:
        """Unique session identifier."""
        return self._session_id

    @property
    def is_closing(self) -> bool:
        """Whether close() has started."""
        return self._closing

    @property
    def is_active(self) -> bool:
        """Check if session is active (connected and not closing)."""
        return not self._closing and self.connection.is_connected

    def touch(self, now: float | None = None) -> None:
        """Record inbound activity (monotonic clock)."""
        self.last_activity = time.monotonic() if now is None else now

    def idle_seconds(self, now: float | None = None) -> float:
        """Seconds since the last inbound activity."""
        current = time.monotonic() if now is None else now
        return current - self.last_activity

    def transition_phase(self, new_phase: TurnPhase) -> None:
        """Transition to a new turn phase with validation.

        Args:
            new_phase: Target phase

        Raises:
            ValueError: If transition is invalid
        """
        if new_phase not in VALID_TRANSITIONS.get(self.phase, set()):
            raise ValueError(f"Invalid phase transition: {self.phase.value} → {new_phase.value}")

        old_phase = self.phase
        self.phase = new_phase

        logger.debug(
            "Session phase transition",
            extra={
                "session_id": self._session_id,
                "from_phase": old_phase.value,
                "to_phase": new_phase.value,
            },
        )

    def begin_turn(self) -> bool:
        """Start recording a new utterance.

        Returns:
            True if a turn started, False if the call was a protocol violation
        """
        if self.phase is not TurnPhase.IDLE:
            # Best-effort recovery: forget partial audio, keep the phase.
            self.metrics.protocol_violations += 1
            self.buffer.discard()
            logger.warning(
                "audio_start received outside idle phase",
                extra={"session_id": self._session_id, "phase": self.phase.value},
            )
            return False

        self.buffer.discard()
        self.interrupt_requested = False
        self.transition_phase(TurnPhase.RECORDING)
        logger.info("Audio stream started", extra={"session_id": self._session_id})
        return True

    def append_audio(self, chunk: bytes) -> bool:
        """Buffer an audio chunk for the current turn.

        Chunks arriving outside RECORDING are dropped so stray audio never
        leaks into the next turn.

        Returns:
            True if the chunk was buffered
        """
        if self.phase is not TurnPhase.RECORDING:
            self.metrics.dropped_chunks += 1
            logger.debug(
                "Dropping audio chunk outside recording phase",
                extra={"session_id": self._session_id, "phase": self.phase.value},
            )
            return False

        try:
            self.buffer.append(chunk)
        except BufferOverflowError as e:
            self.metrics.dropped_chunks += 1
            logger.warning(
                "Dropping audio chunk, turn buffer full",
                extra={"session_id": self._session_id, "error": str(e)},
            )
            return False

        return True

    async def complete_turn(self) -> TurnResult | None:
        """Close the current utterance and produce a reply.

        Returns:
            TurnResult, or None when there is nothing to reply to (no audio,
            empty transcript, speech-to-text failure, interrupted before the
            model call, or no turn in progress)
        """
        async with self._turn_lock:
            if self.phase is not TurnPhase.RECORDING:
                logger.warning(
                    "audio_end received outside recording phase",
                    extra={"session_id": self._session_id, "phase": self.phase.value},
                )
                return None

            start_time = time.perf_counter()
            self.transition_phase(TurnPhase.PROCESSING)
            audio = self.buffer.drain()

            if not audio:
                logger.warning("No audio data to process", extra={"session_id": self._session_id})
                self._end_empty_turn()
                return None

            logger.info(
                "Processing audio stream",
                extra={"session_id": self._session_id, "audio_bytes": len(audio)},
            )

            try:
                user_text = await self._call("speech_to_text", self.speech_to_text.transcribe(audio))
            except CollaboratorError as e:
                self.metrics.collaborator_failures += 1
                logger.error(
                    "Speech-to-text failed",
                    extra={"session_id": self._session_id, "error": str(e)},
                )
                self._end_empty_turn()
                return None

            user_text = (user_text or "").strip()
            if not user_text:
                logger.warning("No transcript to process", extra={"session_id": self._session_id})
                self._end_empty_turn()
                return None

            # Interrupt checkpoint: no model call is started once interrupted.
            if self.interrupt_requested or self.phase is not TurnPhase.PROCESSING:
                logger.info(
                    "Turn abandoned after interrupt",
                    extra={"session_id": self._session_id},
                )
                self.metrics.empty_turns += 1
                return None

            reply_text = await self._reply_to(user_text)
            reply_audio = await self._synthesize(reply_text)

            if self.phase is TurnPhase.PROCESSING:
                self.transition_phase(TurnPhase.RESPONDING)
                self.transition_phase(TurnPhase.IDLE)
            else:
                logger.info(
                    "Delivering reply for interrupted turn",
                    extra={"session_id": self._session_id, "phase": self.phase.value},
                )

            latency_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record_turn(latency_ms)
            logger.info(
                "Turn completed",
                extra={"session_id": self._session_id, "latency_ms": round(latency_ms, 1)},
            )
            return TurnResult(reply_text=reply_text, reply_audio=reply_audio, user_text=user_text)

    async def send_text(self, text: str) -> TurnResult:
        """Reply to a typed message.

        Independent of the audio phases: the turn phase is neither required
        nor modified.

        Args:
            text: User message

        Returns:
            TurnResult (apology text if the model call failed)
        """
        async with self._turn_lock:
            self.metrics.text_messages += 1
            logger.info(
                "Text message received",
                extra={"session_id": self._session_id, "text_length": len(text)},
            )
            reply_text = await self._reply_to(text)
            reply_audio = await self._synthesize(reply_text)
            return TurnResult(reply_text=reply_text, reply_audio=reply_audio, user_text=text)

    def interrupt(self) -> None:
        """Stop the current turn.

        Discards buffered audio and forces the phase to IDLE. A collaborator
        call already in flight is not cancelled; its reply is still delivered.
        """
        self.interrupt_requested = True
        self.buffer.discard()
        self.metrics.interruptions += 1

        if self.phase is not TurnPhase.IDLE:
            logger.info(
                "Interrupt forced phase to idle",
                extra={"session_id": self._session_id, "from_phase": self.phase.value},
            )
            self.phase = TurnPhase.IDLE
        else:
            logger.info("Interrupt received while idle", extra={"session_id": self._session_id})

    async def close(self) -> None:
        """Release the connection, transcript and buffer.

        Idempotent; closing the connection is bounded by close_timeout_s.
        """
        if self._closing:
            return
        self._closing = True

        self.interrupt_requested = True
        self.buffer.discard()
        self.phase = TurnPhase.IDLE

        try:
            await asyncio.wait_for(self.connection.close(), timeout=self.close_timeout_s)
        except TimeoutError:
            logger.warning(
                "Timed out closing connection",
                extra={"session_id": self._session_id, "timeout_s": self.close_timeout_s},
            )
        except Exception as e:
            logger.warning(
                "Error closing connection",
                extra={"session_id": self._session_id, "error": str(e)},
            )

        try:
            await self.transcript_collaborator.close()
        except Exception as e:
            logger.warning(
                "Error closing transcript collaborator",
                extra={"session_id": self._session_id, "error": str(e)},
            )

        self.transcript.clear()
        self.metrics.finalize()
        logger.info("Session closed", extra=self.get_metrics_summary())

    async def _call(self, collaborator: str, call: Awaitable[T]) -> T:
        """Await a collaborator call bounded by the collaborator timeout.

        Raises:
            CollaboratorError: On timeout or any failure of the call
        """
        try:
            return await asyncio.wait_for(call, timeout=self.collaborator_timeout_s)
        except TimeoutError as e:
            raise CollaboratorError(
                collaborator, f"timed out after {self.collaborator_timeout_s}s"
            ) from e
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(collaborator, f"unexpected error: {e}") from e

    async def _reply_to(self, user_text: str) -> str:
        """Ask the model for a reply and record the exchange.

        A failed model call yields the apology text and leaves the
        transcript untouched.
        """
        try:
            reply_text = await self._call(
                "transcript", self.transcript_collaborator.send(tuple(self.transcript), user_text)
            )
        except CollaboratorError as e:
            self.metrics.collaborator_failures += 1
            logger.error(
                "Transcript collaborator failed, substituting apology",
                extra={"session_id": self._session_id, "error": str(e)},
            )
            return self.apology_text

        self.transcript.append(ConversationTurn(role="user", text=user_text))
        self.transcript.append(ConversationTurn(role="assistant", text=reply_text))
        return reply_text

    async def _synthesize(self, text: str) -> bytes:
        try:
            return await self._call("text_to_speech", self.text_to_speech.synthesize(text))
        except CollaboratorError as e:
            self.metrics.collaborator_failures += 1
            logger.error(
                "Text-to-speech failed, replying without audio",
                extra={"session_id": self._session_id, "error": str(e)},
            )
            return b""

    def _end_empty_turn(self) -> None:
        self.metrics.empty_turns += 1
        if self.phase is TurnPhase.PROCESSING:
            self.transition_phase(TurnPhase.IDLE)

    def get_metrics_summary(self) -> dict[str, str | float | int | None]:
        """Get session metrics summary for logging/monitoring.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "session_id": self._session_id,
            "phase": self.phase.value,
            "turns_completed": self.metrics.turns_completed,
            "empty_turns": self.metrics.empty_turns,
            "text_messages": self.metrics.text_messages,
            "interruptions": self.metrics.interruptions,
            "protocol_violations": self.metrics.protocol_violations,
            "collaborator_failures": self.metrics.collaborator_failures,
            "dropped_chunks": self.metrics.dropped_chunks,
            "last_turn_latency_ms": self.metrics.last_turn_latency_ms,
            "session_duration_s": (
                (self.metrics.session_end_ts or time.monotonic()) - self.metrics.session_start_ts
            ),
        }
