"""Base interfaces for the gateway's external collaborators.

A session talks to three collaborators through narrow contracts so real
speech or model backends can be substituted without touching the turn
state machine:

- TranscriptCollaborator: conversational model, text in / text out
- SpeechToText: utterance bytes to transcript text
- TextToSpeech: reply text to audio bytes

Implementations report failures by raising CollaboratorError.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    """One entry of a session's transcript.

    Attributes:
        role: Who produced the text ("user" or "assistant")
        text: Utterance or reply text
    """

    role: Role
    text: str

    def to_message(self) -> dict[str, str]:
        """Convert to a chat completion message dict."""
        return {"role": self.role, "content": self.text}


class TranscriptCollaborator(ABC):
    """Conversational model used by one session."""

    @abstractmethod
    async def initialize(self, system_prompt: str) -> None:
        """Prepare the collaborator for a new conversation.

        Args:
            system_prompt: Instructions framing every reply

        Raises:
            CollaboratorError: If the backend cannot be initialized
        """
        pass

    @abstractmethod
    async def send(self, history: Sequence[ConversationTurn], new_text: str) -> str:
        """Produce the assistant reply to `new_text`.

        Args:
            history: Prior turns of this conversation, oldest first
            new_text: The user's new message

        Returns:
            Reply text

        Raises:
            CollaboratorError: On network, auth, quota or malformed-response failures
        """
        pass

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""
        return None


class SpeechToText(ABC):
    """Converts a complete utterance to text."""

    @abstractmethod
    async def transcribe(self, audio: bytes) -> str:
        """Transcribe utterance audio.

        Args:
            audio: Concatenated utterance bytes

        Returns:
            Transcript text; an empty string means nothing was recognized

        Raises:
            CollaboratorError: If transcription fails
        """
        pass


class TextToSpeech(ABC):
    """Converts reply text to audio."""

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Synthesize reply audio.

        Args:
            text: Reply text

        Returns:
            Audio bytes

        Raises:
            CollaboratorError: If synthesis fails
        """
        pass
