"""Transcript collaborators backed by a chat completion model.

OpenAITranscriptCollaborator calls any OpenAI-compatible chat completions
endpoint (OpenAI itself, or a provider exposing the same API through
`base_url`). The session owns the conversation history and passes it in on
every call, so one AsyncOpenAI client can be shared by all sessions.
"""

import logging
import time
from collections.abc import Sequence
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from voicechat.collaborators.base import ConversationTurn, TranscriptCollaborator
from voicechat.config import LLMConfig
from voicechat.errors import CollaboratorError

logger = logging.getLogger(__name__)


def create_openai_client(config: LLMConfig) -> AsyncOpenAI:
    """Create the AsyncOpenAI client shared by all sessions.

    Args:
        config: LLM configuration (api_key falls back to OPENAI_API_KEY)

    Returns:
        Configured client

    Raises:
        ValueError: If no usable API key is available
    """
    try:
        return AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
    except OpenAIError as e:
        raise ValueError(
            "Invalid OpenAI API key. Set OPENAI_API_KEY environment variable "
            "or llm.api_key in the config file."
        ) from e


class OpenAITranscriptCollaborator(TranscriptCollaborator):
    """Chat completion collaborator for one session.

    Thread-safety: This class is NOT thread-safe. Use from a single async task.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> None:
        """Initialize collaborator.

        Args:
            client: Shared AsyncOpenAI client
            model: Chat completion model name
            temperature: Sampling temperature
            max_tokens: Max tokens per reply
        """
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt: str | None = None

    async def initialize(self, system_prompt: str) -> None:
        self.system_prompt = system_prompt
        logger.debug(
            "Transcript collaborator initialized",
            extra={"model": self.model, "prompt_length": len(system_prompt)},
        )

    def _build_messages(
        self, history: Sequence[ConversationTurn], new_text: str
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(turn.to_message() for turn in history)
        messages.append({"role": "user", "content": new_text})
        return messages

    async def send(self, history: Sequence[ConversationTurn], new_text: str) -> str:
        if self.system_prompt is None:
            raise CollaboratorError("transcript", "collaborator not initialized")

        messages = self._build_messages(history, new_text)
        start_time = time.perf_counter()

        logger.debug(f"Calling chat completions: model={self.model}, messages={len(messages)}")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            raise CollaboratorError("transcript", f"chat completion failed: {e}") from e

        if not response.choices:
            raise CollaboratorError("transcript", "response contained no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise CollaboratorError("transcript", "response contained no text")

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Model reply received",
            extra={"model": self.model, "latency_ms": round(latency_ms, 1), "chars": len(content)},
        )
        return content


class EchoTranscriptCollaborator(TranscriptCollaborator):
    """Offline collaborator that replies with the user's own text.

    Used for local development without model credentials.
    """

    async def initialize(self, system_prompt: str) -> None:
        return None

    async def send(self, history: Sequence[ConversationTurn], new_text: str) -> str:
        return new_text
