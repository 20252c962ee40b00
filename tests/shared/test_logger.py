"""Tests for the shared observability logging helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import structlog

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shared.observability.logger import (  # noqa: E402
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    request_context,
)


def test_generate_request_id_is_unique_hex() -> None:
    first, second = generate_request_id(), generate_request_id()

    assert first != second
    assert len(first) == 32
    int(first, 16)


def test_request_context_binds_and_restores() -> None:
    assert get_request_id() is None

    with request_context(request_id="req-1", route="/recommendations") as rid:
        assert rid == "req-1"
        assert get_request_id() == "req-1"
        bound = structlog.contextvars.get_contextvars()
        assert bound["request_id"] == "req-1"
        assert bound["route"] == "/recommendations"

    assert get_request_id() is None
    assert "request_id" not in structlog.contextvars.get_contextvars()


def test_nested_request_context_restores_outer_values() -> None:
    with request_context(request_id="outer"):
        with request_context(request_id="inner"):
            assert get_request_id() == "inner"
        assert get_request_id() == "outer"
        assert structlog.contextvars.get_contextvars()["request_id"] == "outer"


def test_request_context_generates_an_id_when_missing() -> None:
    with request_context() as rid:
        assert rid
        assert get_request_id() == rid


def test_configure_logging_is_repeatable() -> None:
    configure_logging(service_name="ndc_recommender", level="debug", json_logs=True)
    configure_logging(service_name="ndc_recommender", level="INFO", json_logs=True)

    get_logger("tests").info("logging_configured", attempt=2)
    structlog.contextvars.unbind_contextvars("service")
