"""Adapter for configuring OpenAI chat models."""

from __future__ import annotations

from typing import Any, Dict, Optional

from langchain_openai import ChatOpenAI

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
    """Return a configured OpenAI chat model instance.

    ``json_mode`` asks the API for a JSON object response format.
    """

    resolved_settings = resolve_settings(settings)
    openai_settings = resolved_settings.openai
    api_key = require_api_key(openai_settings.api_key)
    if api_key is None:
        raise ProviderUnavailableError(
            "openai",
            detail=(
                "OpenAI API key is not configured. Set the OPENAI_API_KEY environment "
                "variable to enable OpenAI chat models."
            ),
            reason="missing_api_key",
        )

    model_kwargs: Dict[str, Any] = {
        "model": model_name,
        "api_key": api_key,
        "timeout": openai_settings.request_timeout,
        "max_retries": DEFAULT_MAX_RETRIES,
        "max_tokens": resolved_settings.max_output_tokens,
    }
    apply_temperature(model_kwargs, temperature)
    if openai_settings.organization:
        model_kwargs["organization"] = openai_settings.organization
    if openai_settings.base_url:
        model_kwargs["base_url"] = openai_settings.base_url
    if json_mode:
        model_kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

    return ChatOpenAI(**model_kwargs)


__all__ = ["get_chat_model"]
