"""Shared pydantic model helpers."""

from .base import CamelModel, FrozenCamelModel, to_camel

__all__ = ["CamelModel", "FrozenCamelModel", "to_camel"]
