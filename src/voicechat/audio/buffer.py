"""Turn buffer for accumulating one utterance of client audio.

The client streams opaque audio chunks between `audio_start` and
`audio_end`; the buffer keeps them in arrival order until the turn closes,
then hands over the concatenated utterance exactly once.

Design:
    audio_start → buffer cleared → chunks appended → audio_end
    → drain() concatenates and clears → utterance sent to speech-to-text

    interrupt → discard() clears without concatenating
"""

import logging
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES: Final[int] = 10 * 2**20  # 10 MiB


class BufferOverflowError(Exception):
    """Raised when a chunk would push the buffer past its byte limit."""

    pass


class TurnBuffer:
    """Append-only chunk buffer for a single in-flight utterance.

    Thread-safety: This class is NOT thread-safe. Use from a single event
    loop; none of its methods suspend, so each call is atomic with respect
    to other coroutines.

    Example:
        ```python
        buffer = TurnBuffer()
        buffer.append(b"AAA")
        buffer.append(b"BBB")
        assert buffer.drain() == b"AAABBB"
        assert buffer.is_empty
        ```
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        """Initialize turn buffer.

        Args:
            max_bytes: Maximum number of buffered bytes (prevents memory abuse)

        Raises:
            ValueError: If max_bytes is not positive
        """
        if max_bytes <= 0:
            raise ValueError(f"Max bytes must be positive, got {max_bytes}")

        self.max_bytes = max_bytes
        self._chunks: list[bytes] = []
        self._total_bytes = 0

    def append(self, chunk: bytes) -> None:
        """Append an audio chunk.

        Empty chunks are ignored.

        Args:
            chunk: Opaque audio bytes

        Raises:
            BufferOverflowError: If adding the chunk would exceed max_bytes
        """
        if not chunk:
            return

        if self._total_bytes + len(chunk) > self.max_bytes:
            raise BufferOverflowError(
                f"Buffer overflow: would exceed {self.max_bytes} bytes "
                f"(current: {self._total_bytes}, chunk: {len(chunk)})"
            )

        self._chunks.append(bytes(chunk))
        self._total_bytes += len(chunk)

    def drain(self) -> bytes:
        """Concatenate all chunks in arrival order and clear the buffer.

        Returns:
            The utterance bytes (b"" if nothing was buffered)
        """
        audio = b"".join(self._chunks)
        chunk_count = len(self._chunks)
        self._chunks.clear()
        self._total_bytes = 0

        if chunk_count:
            logger.debug(f"Buffer drained: {chunk_count} chunks, {len(audio)} bytes")
        return audio

    def discard(self) -> None:
        """Drop all buffered chunks without concatenating them."""
        if self._chunks:
            logger.debug(
                f"Buffer discarded: {len(self._chunks)} chunks, {self._total_bytes} bytes"
            )
        self._chunks.clear()
        self._total_bytes = 0

    @property
    def is_empty(self) -> bool:
        """Whether the buffer holds no chunks."""
        return not self._chunks

    @property
    def chunk_count(self) -> int:
        """Number of chunks currently buffered."""
        return len(self._chunks)

    @property
    def byte_count(self) -> int:
        """Number of bytes currently buffered."""
        return self._total_bytes

    def __repr__(self) -> str:
        """Return string representation for debugging."""
        return (
            f"TurnBuffer(chunks={len(self._chunks)}, "
            f"bytes={self._total_bytes}/{self.max_bytes})"
        )
