"""Collaborator contracts and built-in implementations."""

from voicechat.collaborators.base import (
    ConversationTurn,
    SpeechToText,
    TextToSpeech,
    TranscriptCollaborator,
)
from voicechat.collaborators.llm import (
    EchoTranscriptCollaborator,
    OpenAITranscriptCollaborator,
    create_openai_client,
)
from voicechat.collaborators.speech import PlaceholderSpeechToText, PlaceholderTextToSpeech

__all__ = [
    "ConversationTurn",
    "EchoTranscriptCollaborator",
    "OpenAITranscriptCollaborator",
    "PlaceholderSpeechToText",
    "PlaceholderTextToSpeech",
    "SpeechToText",
    "TextToSpeech",
    "TranscriptCollaborator",
    "create_openai_client",
]
