"""Provider-specific adapter helpers for language model clients."""

from . import anthropic, openai
from .anthropic import get_chat_model as get_anthropic_chat_model
from .openai import get_chat_model as get_openai_chat_model

__all__ = [
    "anthropic",
    "openai",
    "get_anthropic_chat_model",
    "get_openai_chat_model",
]
