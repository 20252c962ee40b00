"""Credentials and transport options for the chat-model backends.

Model choice and sampling live with the service that calls the model; this
module only describes how to reach each backend.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAISettings(BaseSettings):
    """Connection details for the OpenAI chat completions API."""

    api_key: Optional[str] = Field(default=None, description="Secret key; AI review is off without it")
    organization: Optional[str] = Field(default=None, description="Billing organization identifier")
    base_url: Optional[str] = Field(default=None, description="Gateway or proxy URL replacing api.openai.com")
    request_timeout: float = Field(default=30.0, gt=0, description="Socket timeout for one completion")

    model_config = SettingsConfigDict(env_prefix="OPENAI_", env_file=".env", extra="ignore")


class AnthropicSettings(BaseSettings):
    """Connection details for the Anthropic messages API."""

    api_key: Optional[str] = Field(default=None, description="Secret key; Claude models are off without it")
    base_url: Optional[str] = Field(default=None, description="Gateway or proxy URL replacing api.anthropic.com")
    request_timeout: float = Field(default=30.0, gt=0, description="Socket timeout for one message")

    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_", env_file=".env", extra="ignore")


class LLMSettings(BaseSettings):
    """Backends available to model-backed features."""

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    max_output_tokens: int = Field(
        default=1024,
        ge=64,
        description="Upper bound on reply tokens; package recommendations are short JSON documents",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_", env_file=".env", env_nested_delimiter="__", extra="ignore"
    )


@lru_cache
def get_settings() -> LLMSettings:
    """Return the process-wide backend settings."""

    return LLMSettings()


__all__ = [
    "AnthropicSettings",
    "LLMSettings",
    "OpenAISettings",
    "get_settings",
]
