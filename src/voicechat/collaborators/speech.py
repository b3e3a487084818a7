"""Placeholder speech collaborators.

Neither speech-to-text nor text-to-speech is wired to a real engine yet.
These adapters keep the contracts honest so the session state machine can
be exercised end to end:

- PlaceholderSpeechToText returns a fixed transcript for any non-empty
  utterance
- PlaceholderTextToSpeech returns silent 16-bit PCM whose length scales with
  the reply text
"""

import logging
from typing import Final

from voicechat.collaborators.base import SpeechToText, TextToSpeech

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPT: Final[str] = "What are the features of Revolt motorcycles?"
BYTES_PER_CHAR: Final[int] = 100
MAX_AUDIO_BYTES: Final[int] = 10000


class PlaceholderSpeechToText(SpeechToText):
    """Speech-to-text stand-in returning a fixed transcript."""

    def __init__(self, transcript: str = DEFAULT_TRANSCRIPT) -> None:
        self.transcript = transcript

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            return ""

        logger.info(
            "Simulating speech-to-text conversion",
            extra={"audio_bytes": len(audio)},
        )
        return self.transcript


class PlaceholderTextToSpeech(TextToSpeech):
    """Text-to-speech stand-in returning silence."""

    def __init__(
        self,
        bytes_per_char: int = BYTES_PER_CHAR,
        max_bytes: int = MAX_AUDIO_BYTES,
    ) -> None:
        if bytes_per_char <= 0 or max_bytes <= 0:
            raise ValueError("bytes_per_char and max_bytes must be positive")

        self.bytes_per_char = bytes_per_char
        self.max_bytes = max_bytes

    async def synthesize(self, text: str) -> bytes:
        # Keep a whole number of 16-bit samples, at least one.
        length = min(max(len(text), 1) * self.bytes_per_char, self.max_bytes)
        length = max(length - length % 2, 2)

        logger.info(
            "Simulating text-to-speech conversion",
            extra={"text_length": len(text), "audio_bytes": length},
        )
        return bytes(length)
