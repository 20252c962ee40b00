"""Shared utilities for LLM adapter implementations."""

from __future__ import annotations

from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel

from shared.config.settings import LLMSettings, get_settings

# Client-side retries are disabled: callers put a circuit breaker in front of
# the model and need to observe every failed attempt.
DEFAULT_MAX_RETRIES = 0


def resolve_settings(settings: Optional[LLMSettings]) -> LLMSettings:
    """Return provided settings or fall back to application defaults."""

    return settings or get_settings()


def apply_temperature(kwargs: Dict[str, Any], temperature: Optional[float]) -> None:
    """Attach ``temperature`` to ``kwargs`` when explicitly supplied."""

    if temperature is not None:
        kwargs["temperature"] = float(temperature)


def require_api_key(value: Optional[str]) -> str | None:
    """Return a stripped API key or ``None`` when it is blank."""

    key = (value or "").strip()
    return key or None


__all__ = [
    "BaseChatModel",
    "DEFAULT_MAX_RETRIES",
    "apply_temperature",
    "require_api_key",
    "resolve_settings",
]
