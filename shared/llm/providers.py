"""Definitions for supported large language model providers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.config.settings import LLMSettings

from .adapters import anthropic as anthropic_adapter, openai as openai_adapter
from .adapters._base import BaseChatModel


@dataclass(frozen=True)
class TokenPricing:
    """USD price per 1K prompt and completion tokens."""

    prompt_per_1k: float
    completion_per_1k: float

    def estimate(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (
            prompt_tokens / 1000.0 * self.prompt_per_1k
            + completion_tokens / 1000.0 * self.completion_per_1k
        )


class LLMProvider(str, Enum):
    """Enumerate supported provider/model combinations."""

    OPENAI_GPT_4O = "openai/gpt-4o"
    OPENAI_GPT_4O_MINI = "openai/gpt-4o-mini"
    OPENAI_GPT_4_TURBO = "openai/gpt-4-turbo"
    CLAUDE_3_HAIKU = "anthropic/claude-3-haiku-20240307"
    CLAUDE_35_SONNET = "anthropic/claude-3-5-sonnet-20240620"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value

    @property
    def backend(self) -> str:
        """Return the backend identifier (``openai`` or ``anthropic``)."""

        return self.value.split("/", 1)[0]

    @property
    def model_name(self) -> str:
        return self.value.split("/", 1)[1]

    @property
    def pricing(self) -> TokenPricing:
        return _PRICING[self]

    @classmethod
    def resolve(cls, identifier: str) -> "LLMProvider":
        """Return the provider matching ``identifier``.

        Accepts the canonical ``backend/model`` value or a bare model name.
        """

        candidate = identifier.strip().lower()
        for provider in cls:
            if candidate in {provider.value, provider.model_name}:
                return provider
        raise ValueError(f"Unsupported LLM provider '{identifier}'.")

    def create_client(
        self,
        settings: LLMSettings,
        temperature: Optional[float] = None,
        *,
        json_mode: bool = True,
    ) -> BaseChatModel:
        """Instantiate a LangChain chat model for the provider.

        ``temperature=None`` leaves the backend default in place.
        """

        if self.backend == "openai":
            return openai_adapter.get_chat_model(
                self.model_name,
                settings=settings,
                temperature=temperature,
                json_mode=json_mode,
            )
        if self.backend == "anthropic":
            return anthropic_adapter.get_chat_model(
                self.model_name,
                settings=settings,
                temperature=temperature,
                json_mode=json_mode,
            )
        raise ValueError(
            f"Unsupported LLM backend '{self.backend}' for provider {self.value}."
        )


_PRICING: dict[LLMProvider, TokenPricing] = {
    LLMProvider.OPENAI_GPT_4O: TokenPricing(0.005, 0.015),
    LLMProvider.OPENAI_GPT_4O_MINI: TokenPricing(0.00015, 0.0006),
    LLMProvider.OPENAI_GPT_4_TURBO: TokenPricing(0.01, 0.03),
    LLMProvider.CLAUDE_3_HAIKU: TokenPricing(0.00025, 0.00125),
    LLMProvider.CLAUDE_35_SONNET: TokenPricing(0.003, 0.015),
}


__all__ = ["LLMProvider", "TokenPricing"]
