"""Adapter for configuring Anthropic Claude chat models."""

from __future__ import annotations

from typing import Any, Dict, Optional

from langchain_anthropic import ChatAnthropic

from shared.config.settings import LLMSettings
from shared.http.errors import ProviderUnavailableError

from ._base import (
    BaseChatModel,
    DEFAULT_MAX_RETRIES,
    apply_temperature,
    require_api_key,
    resolve_settings,
)


def get_chat_model(
    model_name: str,
    *,
    settings: Optional[LLMSettings] = None,
    temperature: Optional[float] = None,
    json_mode: bool = False,
) -> BaseChatModel:
    """Return a configured Anthropic chat model instance.

    Claude has no JSON response format switch, so ``json_mode`` is accepted
    for signature parity and the prompt carries the JSON instruction instead.
    """

    resolved_settings = resolve_settings(settings)
    anthropic_settings = resolved_settings.anthropic
    api_key = require_api_key(anthropic_settings.api_key)
    if api_key is None:
        raise ProviderUnavailableError(
            "anthropic",
            detail=(
                "Anthropic API key is not configured. Set the ANTHROPIC_API_KEY "
                "environment variable to enable Claude models."
            ),
            reason="missing_api_key",
        )

    model_kwargs: Dict[str, Any] = {
        "model": model_name,
        "api_key": api_key,
        "timeout": anthropic_settings.request_timeout,
        "max_retries": DEFAULT_MAX_RETRIES,
        "max_tokens": resolved_settings.max_output_tokens,
    }
    apply_temperature(model_kwargs, temperature)
    if anthropic_settings.base_url:
        model_kwargs["base_url"] = anthropic_settings.base_url

    return ChatAnthropic(**model_kwargs)


__all__ = ["get_chat_model"]
