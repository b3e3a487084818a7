"""Audio utilities for buffering utterances and base64 payload encoding.

Audio is treated as an opaque byte payload here; only the speech
collaborators interpret it.
"""

from .buffer import BufferOverflowError, TurnBuffer
from .encoding import decode_audio, encode_audio

__all__ = [
    "BufferOverflowError",
    "TurnBuffer",
    "decode_audio",
    "encode_audio",
]
