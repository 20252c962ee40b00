"""Tests for :mod:`shared.llm.providers` behavior and edge cases."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shared.config.settings import AnthropicSettings, LLMSettings, OpenAISettings  # noqa: E402
from shared.http.errors import ProviderUnavailableError  # noqa: E402
from shared.llm import LLMProvider, TokenPricing  # noqa: E402


def _settings(**overrides) -> LLMSettings:
    return LLMSettings(
        openai=OpenAISettings(api_key=overrides.get("openai_key")),
        anthropic=AnthropicSettings(api_key=overrides.get("anthropic_key")),
    )


@pytest.mark.parametrize(
    ("identifier", "expected"),
    [
        ("openai/gpt-4o-mini", LLMProvider.OPENAI_GPT_4O_MINI),
        ("gpt-4o", LLMProvider.OPENAI_GPT_4O),
        ("  Anthropic/Claude-3-Haiku-20240307 ", LLMProvider.CLAUDE_3_HAIKU),
    ],
)
def test_resolve_accepts_values_and_model_names(identifier: str, expected: LLMProvider) -> None:
    assert LLMProvider.resolve(identifier) is expected


def test_resolve_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError):
        LLMProvider.resolve("vertex/gemini-pro")


def test_backend_and_model_name() -> None:
    provider = LLMProvider.CLAUDE_35_SONNET

    assert provider.backend == "anthropic"
    assert provider.model_name == "claude-3-5-sonnet-20240620"


def test_every_provider_has_pricing() -> None:
    for provider in LLMProvider:
        assert isinstance(provider.pricing, TokenPricing)


def test_pricing_estimate_is_per_thousand_tokens() -> None:
    pricing = LLMProvider.OPENAI_GPT_4O.pricing

    assert pricing.estimate(1000, 1000) == pytest.approx(0.02)
    assert pricing.estimate(0, 0) == 0.0


@pytest.mark.parametrize("provider", [LLMProvider.OPENAI_GPT_4O_MINI, LLMProvider.CLAUDE_3_HAIKU])
def test_create_client_requires_credentials(provider: LLMProvider) -> None:
    with pytest.raises(ProviderUnavailableError) as exc_info:
        provider.create_client(_settings())

    assert exc_info.value.reason == "missing_api_key"


def test_create_client_builds_openai_chat_model() -> None:
    from langchain_openai import ChatOpenAI

    model = LLMProvider.OPENAI_GPT_4O_MINI.create_client(
        _settings(openai_key="sk-test"), temperature=0.1
    )

    assert isinstance(model, ChatOpenAI)
    assert model.model_name == "gpt-4o-mini"
    assert model.temperature == 0.1
    assert model.max_retries == 0
    assert model.max_tokens == 1024


def test_create_client_builds_anthropic_chat_model() -> None:
    from langchain_anthropic import ChatAnthropic

    model = LLMProvider.CLAUDE_3_HAIKU.create_client(_settings(anthropic_key="sk-ant-test"))

    assert isinstance(model, ChatAnthropic)
    assert model.model == "claude-3-haiku-20240307"
