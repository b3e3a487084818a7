"""Shared fixtures for gateway tests."""

from collections.abc import Callable
from typing import Any

import pytest

from tests.helpers.fakes import (
    FakeConnection,
    StubSpeechToText,
    StubTextToSpeech,
    StubTranscriptCollaborator,
)
from voicechat.registry import SessionRegistry
from voicechat.session import VoiceSession


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def transcript_collaborator() -> StubTranscriptCollaborator:
    return StubTranscriptCollaborator()


@pytest.fixture
def speech_to_text() -> StubSpeechToText:
    return StubSpeechToText()


@pytest.fixture
def text_to_speech() -> StubTextToSpeech:
    return StubTextToSpeech()


@pytest.fixture
def make_session(
    connection: FakeConnection,
    transcript_collaborator: StubTranscriptCollaborator,
    speech_to_text: StubSpeechToText,
    text_to_speech: StubTextToSpeech,
) -> Callable[..., VoiceSession]:
    """Factory building a session wired to the shared stubs."""

    def _make(**overrides: Any) -> VoiceSession:
        kwargs: dict[str, Any] = {
            "session_id": "session_test",
            "connection": connection,
            "transcript_collaborator": transcript_collaborator,
            "speech_to_text": speech_to_text,
            "text_to_speech": text_to_speech,
        }
        kwargs.update(overrides)
        return VoiceSession(**kwargs)

    return _make


@pytest.fixture
def registry(
    transcript_collaborator: StubTranscriptCollaborator,
    speech_to_text: StubSpeechToText,
    text_to_speech: StubTextToSpeech,
) -> SessionRegistry:
    """Registry whose sessions all share the `transcript_collaborator` stub."""
    return SessionRegistry(
        transcript_factory=lambda: transcript_collaborator,
        speech_to_text=speech_to_text,
        text_to_speech=text_to_speech,
        system_prompt="You are a test assistant.",
    )
