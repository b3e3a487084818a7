"""WebSocket message protocol definitions.

Defines Pydantic models for control frame serialization/deserialization and
the tagged union every inbound frame is decoded into exactly once:

- AudioChunkFrame: raw binary frame, or an `audio_data` control frame whose
  base64 payload has been decoded
- ControlFrame: a validated client control message
- UnknownFrame: well-formed JSON with an unrecognized `type`

Control frames are JSON objects discriminated by `type`. Field names on the
wire are camelCase (`sessionId`, `audioData`).
"""

import json
from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from voicechat.audio.encoding import decode_audio, encode_audio
from voicechat.errors import ProtocolError


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Client → Server


class AudioStartMessage(_WireModel):
    """Client → Server: the user started speaking."""

    type: Literal["audio_start"] = "audio_start"


class AudioEndMessage(_WireModel):
    """Client → Server: the user finished speaking."""

    type: Literal["audio_end"] = "audio_end"


class InterruptMessage(_WireModel):
    """Client → Server: stop the current turn."""

    type: Literal["interrupt"] = "interrupt"


class TextInputMessage(_WireModel):
    """Client → Server: typed message, bypassing speech-to-text."""

    type: Literal["text_message"] = "text_message"
    text: str = Field(..., min_length=1, description="User message text")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject whitespace-only messages."""
        if not v.strip():
            raise ValueError("text must not be blank")
        return v


class PingMessage(_WireModel):
    """Client → Server: keepalive probe."""

    type: Literal["ping"] = "ping"


class AudioDataMessage(_WireModel):
    """Client → Server: audio chunk carried inside a control frame."""

    type: Literal["audio_data"] = "audio_data"
    audio_data: str = Field(..., alias="audioData", description="Base64-encoded audio chunk")


ClientMessage = Annotated[
    AudioStartMessage
    | AudioEndMessage
    | InterruptMessage
    | TextInputMessage
    | PingMessage
    | AudioDataMessage,
    Field(discriminator="type"),
]

CLIENT_MESSAGE_TYPES: frozenset[str] = frozenset(
    {"audio_start", "audio_end", "interrupt", "text_message", "ping", "audio_data"}
)

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


# Server → Client


class ConnectedMessage(_WireModel):
    """Server → Client: session established."""

    type: Literal["connected"] = "connected"
    session_id: str = Field(..., alias="sessionId", description="Unique session identifier")
    message: str = Field(default="Connected to Revolt Motors voice assistant")


class AudioResponseMessage(_WireModel):
    """Server → Client: reply to a spoken turn."""

    type: Literal["audio_response"] = "audio_response"
    audio_data: str = Field(..., alias="audioData", description="Base64-encoded reply audio")
    transcript: str = Field(..., description="Reply text")


class TextResponseMessage(_WireModel):
    """Server → Client: reply to a typed message."""

    type: Literal["text_response"] = "text_response"
    text: str = Field(..., description="Reply text")
    audio_data: str = Field(..., alias="audioData", description="Base64-encoded reply audio")


class InterruptedMessage(_WireModel):
    """Server → Client: interrupt acknowledged."""

    type: Literal["interrupted"] = "interrupted"
    message: str = Field(default="AI speech interrupted")


class ErrorMessage(_WireModel):
    """Server → Client: error notification."""

    type: Literal["error"] = "error"
    message: str = Field(..., description="Error description")


class PongMessage(_WireModel):
    """Server → Client: keepalive reply."""

    type: Literal["pong"] = "pong"


# Union type for all server → client messages
ServerMessage = (
    ConnectedMessage
    | AudioResponseMessage
    | TextResponseMessage
    | InterruptedMessage
    | ErrorMessage
    | PongMessage
)


# Decoded inbound frames


@dataclass(frozen=True)
class AudioChunkFrame:
    """Audio bytes for the session's current turn."""

    data: bytes


@dataclass(frozen=True)
class ControlFrame:
    """Validated control message (never `audio_data`)."""

    message: AudioStartMessage | AudioEndMessage | InterruptMessage | TextInputMessage | PingMessage


@dataclass(frozen=True)
class UnknownFrame:
    """Control payload with an unrecognized `type`."""

    type: str


InboundFrame = AudioChunkFrame | ControlFrame | UnknownFrame


def decode_frame(raw: str | bytes) -> InboundFrame:
    """Decode one inbound transport frame.

    Args:
        raw: Text frame (JSON control payload) or binary frame (audio)

    Returns:
        The decoded frame

    Raises:
        ProtocolError: If a text frame is not a valid control payload
    """
    if isinstance(raw, bytes | bytearray | memoryview):
        return AudioChunkFrame(bytes(raw))

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Control frame must be a JSON object")

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise ProtocolError("Control frame is missing a string 'type' field")

    if message_type not in CLIENT_MESSAGE_TYPES:
        return UnknownFrame(message_type)

    try:
        message = _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid '{message_type}' frame: {e.error_count()} error(s)") from e

    if isinstance(message, AudioDataMessage):
        try:
            return AudioChunkFrame(decode_audio(message.audio_data))
        except ValueError as e:
            raise ProtocolError(str(e)) from e

    return ControlFrame(message)


def encode_frame(message: ServerMessage) -> str:
    """Serialize a server message to its JSON wire form."""
    return message.model_dump_json(by_alias=True)


def audio_response(transcript: str, audio: bytes) -> AudioResponseMessage:
    """Build an `audio_response` frame from reply text and audio."""
    return AudioResponseMessage(transcript=transcript, audio_data=encode_audio(audio))


def text_response(text: str, audio: bytes) -> TextResponseMessage:
    """Build a `text_response` frame from reply text and audio."""
    return TextResponseMessage(text=text, audio_data=encode_audio(audio))
