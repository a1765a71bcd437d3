"""Configuration management for huddle."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from huddle.logging_utils import configure_logging

Backend = Literal["openai", "customllm", "realtime"]

# Some self-hosted backends reject a request that carries no user message at all.
BACKENDS_REQUIRING_USER_MESSAGE: frozenset[str] = frozenset({"customllm"})


class Settings(BaseSettings):
    """Conversation settings."""

    model_config = SettingsConfigDict(
        env_prefix="HUDDLE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model Configuration
    model: str | None = Field(None, description="Model in provider:model form (e.g. 'openai:gpt-4o-mini')")
    api_key: str | None = Field(None, description="API key for the LLM provider")
    api_base: str | None = Field(None, description="Optional API base URL")
    backend: Backend = Field(default="openai", description="Backend variant driving the bot")
    model_timeout_seconds: float | None = Field(None, description="Transport timeout for one model call")

    # Conversation Configuration
    enable_tools: bool = Field(default=True, description="Send registered tools to the model")
    summary_word_count: int = Field(default=200, description="Target length of a history summary in words")
    summary_token_trigger: int = Field(default=3200, description="Compact history above this estimated token count")
    prefix_with_user_names: bool = Field(default=False, description="Prefix user messages with the speaker name")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def requires_user_message(self) -> bool:
        return self.backend in BACKENDS_REQUIRING_USER_MESSAGE


def get_settings(**overrides: object) -> Settings:
    """Get settings from the environment, with explicit overrides applied on top.

    Also configures process logging at the resolved log level.
    """
    settings = Settings(**overrides)  # type: ignore[arg-type]

    configure_logging(level=settings.log_level)

    return settings
