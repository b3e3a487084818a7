"""Audio payload encoding for JSON transport.

Audio payloads carried inside control frames (`audioData`) are standard
base64 text. No framing, sample-rate or size constraints are imposed: the
bytes are opaque to the gateway.
"""

import base64
import binascii


def encode_audio(audio: bytes) -> str:
    """Encode audio bytes to a base64 string for JSON transport.

    Args:
        audio: Raw audio bytes

    Returns:
        Base64-encoded ASCII string
    """
    return base64.b64encode(audio).decode("ascii")


def decode_audio(encoded: str) -> bytes:
    """Decode a base64 string back to audio bytes.

    Args:
        encoded: Base64-encoded audio

    Returns:
        Raw audio bytes

    Raises:
        ValueError: If the string is not valid base64
    """
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Failed to decode base64 audio payload: {e}") from e
