"""Observability utilities shared across the recommender services."""

from .logger import (
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    request_context,
)
from .middleware import CorrelationIdMiddleware, RequestTimingMiddleware
from .redaction import redact_event, redact_text, scrub_for_logging

__all__ = [
    "CorrelationIdMiddleware",
    "RequestTimingMiddleware",
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "redact_event",
    "redact_text",
    "request_context",
    "scrub_for_logging",
]
