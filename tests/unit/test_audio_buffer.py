"""Unit tests for TurnBuffer and audio payload encoding.

Tests utterance accumulation between audio_start and audio_end, and the
base64 codec used for audio carried inside JSON frames.
"""

import base64

import pytest

from voicechat.audio import BufferOverflowError, TurnBuffer, decode_audio, encode_audio
from voicechat.audio.buffer import DEFAULT_MAX_BYTES


class TestTurnBufferInit:
    """Test TurnBuffer initialization."""

    def test_default_initialization(self) -> None:
        """Test buffer with default parameters."""
        buffer = TurnBuffer()
        assert buffer.max_bytes == DEFAULT_MAX_BYTES
        assert buffer.is_empty
        assert buffer.chunk_count == 0
        assert buffer.byte_count == 0

    def test_zero_max_bytes(self) -> None:
        """Test that zero max bytes raises ValueError."""
        with pytest.raises(ValueError, match="Max bytes must be positive"):
            TurnBuffer(max_bytes=0)


class TestTurnBufferOperations:
    """Test append, drain and discard."""

    def test_drain_concatenates_in_order(self) -> None:
        """Test chunks come back concatenated in arrival order."""
        buffer = TurnBuffer()
        buffer.append(b"AAA")
        buffer.append(b"BBB")
        buffer.append(b"CCC")

        assert buffer.drain() == b"AAABBBCCC"
        assert buffer.is_empty
        assert buffer.byte_count == 0

    def test_drain_twice(self) -> None:
        """Test an utterance is handed over exactly once."""
        buffer = TurnBuffer()
        buffer.append(b"AAA")

        assert buffer.drain() == b"AAA"
        assert buffer.drain() == b""

    def test_empty_chunk_ignored(self) -> None:
        """Test empty chunks are not counted."""
        buffer = TurnBuffer()
        buffer.append(b"")

        assert buffer.is_empty
        assert buffer.chunk_count == 0

    def test_discard(self) -> None:
        """Test discard clears without returning data."""
        buffer = TurnBuffer()
        buffer.append(b"AAA")
        buffer.discard()

        assert buffer.is_empty
        assert buffer.drain() == b""

    def test_append_copies_mutable_chunks(self) -> None:
        """Test later mutation of the caller's buffer does not leak in."""
        buffer = TurnBuffer()
        chunk = bytearray(b"AAA")
        buffer.append(chunk)  # type: ignore[arg-type]
        chunk[:] = b"ZZZ"

        assert buffer.drain() == b"AAA"

    def test_overflow(self) -> None:
        """Test exceeding max bytes raises and keeps existing chunks."""
        buffer = TurnBuffer(max_bytes=5)
        buffer.append(b"AAA")

        with pytest.raises(BufferOverflowError, match="Buffer overflow"):
            buffer.append(b"BBB")

        assert buffer.byte_count == 3
        assert buffer.chunk_count == 1

    def test_exact_limit_accepted(self) -> None:
        """Test a chunk filling the buffer exactly is accepted."""
        buffer = TurnBuffer(max_bytes=6)
        buffer.append(b"AAA")
        buffer.append(b"BBB")

        assert buffer.byte_count == 6

    def test_repr(self) -> None:
        """Test repr shows occupancy."""
        buffer = TurnBuffer(max_bytes=100)
        buffer.append(b"AAA")
        assert repr(buffer) == "TurnBuffer(chunks=1, bytes=3/100)"


class TestAudioEncoding:
    """Test base64 audio payload codec."""

    def test_encode_audio(self) -> None:
        """Test encoding produces standard base64 text."""
        assert encode_audio(b"\x00\x01\x02") == base64.b64encode(b"\x00\x01\x02").decode("ascii")

    def test_encode_empty(self) -> None:
        """Test empty audio encodes to an empty string."""
        assert encode_audio(b"") == ""

    def test_decode_audio(self) -> None:
        """Test decoding standard base64."""
        assert decode_audio("AAEC") == b"\x00\x01\x02"

    def test_decode_invalid_base64(self) -> None:
        """Test decoding with invalid base64."""
        with pytest.raises(ValueError, match="Failed to decode"):
            decode_audio("not-valid-base64!!!")
