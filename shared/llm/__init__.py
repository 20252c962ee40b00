"""Utilities and helpers for working with language-model providers."""

from .providers import LLMProvider, TokenPricing

__all__ = ["LLMProvider", "TokenPricing"]
