"""Configuration schema for the conversation gateway.

Defines Pydantic models for loading and validating server configuration
from YAML files and environment variables.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_SYSTEM_PROMPT = """
You are Rev, the helpful AI assistant for Revolt Motors, India's leading electric motorcycle company. Your role is to:

1. Answer questions about Revolt Motors products, services, and company information
2. Provide details about electric motorcycles, specifications, features, and pricing
3. Assist with customer inquiries about purchases, service, maintenance, and support
4. Share information about Revolt's sustainability mission and electric mobility vision
5. Guide users through product comparisons and recommendations

Key Information about Revolt Motors:
- Founded in 2019, pioneering electric mobility in India
- Products: RV400 and RV1+ electric motorcycles
- Features: AI-enabled, connected, sustainable transportation
- Services: Home delivery, mobile service, battery swapping
- Mission: Making India electric with innovative, affordable e-mobility solutions

Guidelines:
- Stay focused on Revolt Motors topics
- If asked about competitors or unrelated topics, politely redirect to Revolt Motors
- Be enthusiastic about electric mobility and sustainability
- Provide accurate, helpful information in a conversational tone
- If you don't know specific details, acknowledge it and offer to help with what you do know

Remember: You're representing Revolt Motors, so maintain a professional yet friendly tone that reflects the brand's innovative and customer-focused values.
""".strip()  # noqa: E501

DEFAULT_APOLOGY_TEXT = "I'm sorry, I'm having trouble processing that request right now."


class WebSocketConfig(BaseModel):
    """WebSocket transport configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(
        default=3001, ge=0, le=65535, description="Bind port (0 picks a free port)"
    )
    path: str = Field(default="/voice-chat", description="Request path accepted for upgrades")
    max_connections: int = Field(default=100, ge=1, description="Maximum concurrent connections")
    max_message_bytes: int = Field(
        default=2**20, ge=1024, description="Maximum inbound WebSocket message size"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate that the endpoint path is absolute."""
        if not v.startswith("/"):
            raise ValueError(f"WebSocket path must start with '/', got '{v}'")
        return v


class HealthConfig(BaseModel):
    """Auxiliary HTTP surface configuration."""

    enabled: bool = Field(default=True, description="Serve /health, /liveness and /api/info")
    host: str = Field(default="127.0.0.1", description="Bind host address")
    port: int | None = Field(
        default=None,
        ge=1024,
        le=65535,
        description="Bind port (defaults to the WebSocket port + 1)",
    )


class SessionConfig(BaseModel):
    """Session lifecycle limits."""

    idle_timeout_seconds: float = Field(
        default=1800, ge=1, le=86400, description="Inactivity before a session is evicted"
    )
    sweep_interval_seconds: float = Field(
        default=300, ge=0.1, le=3600, description="Cadence of the idle sweep"
    )
    close_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Upper bound on closing one connection"
    )
    inbox_size: int = Field(
        default=1000, ge=1, description="Pending inbound frames kept per session"
    )
    max_turn_bytes: int = Field(
        default=10 * 2**20, ge=1, description="Maximum buffered audio per turn"
    )

    @model_validator(mode="after")
    def validate_sweep_interval(self) -> "SessionConfig":
        """Ensure the sweep runs at least once per idle window."""
        if self.sweep_interval_seconds > self.idle_timeout_seconds:
            raise ValueError(
                "sweep_interval_seconds must not exceed idle_timeout_seconds "
                f"({self.sweep_interval_seconds} > {self.idle_timeout_seconds})"
            )
        return self


class LLMConfig(BaseModel):
    """Transcript collaborator configuration."""

    provider: str = Field(default="openai", description="Collaborator backend (openai, echo)")
    model: str = Field(default="gpt-4o-mini", description="Chat completion model name")
    api_key: str | None = Field(default=None, description="API key (or OPENAI_API_KEY)")
    base_url: str | None = Field(
        default=None, description="OpenAI-compatible endpoint override"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    apology_text: str = Field(
        default=DEFAULT_APOLOGY_TEXT,
        min_length=1,
        description="Reply substituted when the model call fails",
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate that the provider is supported."""
        valid_providers = ["openai", "echo"]
        if v not in valid_providers:
            raise ValueError(f"LLM provider must be one of {valid_providers}, got '{v}'")
        return v


class SpeechConfig(BaseModel):
    """Placeholder speech collaborator configuration."""

    placeholder_transcript: str = Field(
        default="What are the features of Revolt motorcycles?",
        description="Transcript returned by the placeholder speech-to-text",
    )
    tts_bytes_per_char: int = Field(default=100, ge=1)
    tts_max_bytes: int = Field(default=10000, ge=1)


class ServerConfig(BaseModel):
    """Root server configuration."""

    websocket: WebSocketConfig = Field(default_factory=WebSocketConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)

    # Operational settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    json_logs: bool = Field(default=False, description="Emit one JSON object per log line")
    collaborator_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound on every transcript or speech collaborator call",
    )
    graceful_shutdown_timeout_s: int = Field(
        default=10,
        ge=1,
        description="Graceful shutdown timeout in seconds",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize the logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @property
    def health_port(self) -> int:
        """Port of the auxiliary HTTP surface."""
        if self.health.port is not None:
            return self.health.port
        if self.websocket.port == 0:
            return 0
        return self.websocket.port + 1

    @classmethod
    def from_yaml(cls, path: Path) -> "ServerConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "ServerConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(_apply_env_overrides({}))


def _apply_env_overrides(data: dict) -> dict:
    """Overlay supported environment variables onto raw config data."""
    import os

    if port := os.getenv("PORT"):
        data.setdefault("websocket", {})["port"] = int(port)

    if api_key := os.getenv("OPENAI_API_KEY"):
        data.setdefault("llm", {})["api_key"] = api_key

    if base_url := os.getenv("OPENAI_BASE_URL"):
        data.setdefault("llm", {})["base_url"] = base_url

    if model := os.getenv("LLM_MODEL"):
        data.setdefault("llm", {})["model"] = model

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level

    return data
