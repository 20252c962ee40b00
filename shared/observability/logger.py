"""Logging helpers integrating structlog and loguru with request context.

structlog renders each event (JSON by default) after the PHI redaction
processor has run; the rendered line is handed to the standard library and
from there routed into loguru, which owns the single stdout sink.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from types import FrameType
from typing import Any, Iterator, Mapping

import structlog
from loguru import logger as loguru_logger

from .redaction import redact_event

__all__ = [
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "request_context",
]

_REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)
_CONFIGURED: bool = False
_SERVICE_NAME: str | None = None


def _format_record(record: Mapping[str, Any]) -> str:
    """Return the loguru line template for a structured record."""

    extra = record.get("extra") or {}
    service = extra.get("service") or _SERVICE_NAME or "-"
    request_id = extra.get("request_id") or "-"
    message = str(record.get("message", ""))
    # The returned value is itself treated as a format template by loguru.
    message = message.replace("{", "{{").replace("}", "}}")
    level = record["level"].name
    return (
        f"{record['time'].isoformat()} | {level:<8} | {service} | "
        f"{request_id} | {message}\n"
    )


def _coerce_level(level: str | int) -> tuple[int, str]:
    if isinstance(level, int):
        numeric = level
    else:
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
    name = logging.getLevelName(numeric)
    return numeric, name if isinstance(name, str) else "INFO"


def get_request_id() -> str | None:
    """Return the request identifier bound to the current context, if any."""

    return _REQUEST_ID.get()


def generate_request_id() -> str:
    """Return a new opaque request identifier."""

    return uuid.uuid4().hex


class LoguruInterceptHandler(logging.Handler):
    """Forward standard logging records to loguru with the bound request id."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        bound = loguru_logger.bind(logger=record.name)
        request_id = get_request_id()
        if request_id:
            bound = bound.bind(request_id=request_id)
        bound.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _configure_structlog(json_logs: bool) -> None:
    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            redact_event,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    *,
    service_name: str | None = None,
    level: str | int = "INFO",
    json_logs: bool = True,
) -> None:
    """Configure loguru/structlog integration for the current process.

    Repeated calls are cheap: sinks are installed once and later calls only
    update the bound ``service_name``.
    """

    global _CONFIGURED, _SERVICE_NAME

    numeric_level, level_name = _coerce_level(level)

    if not _CONFIGURED:
        loguru_logger.remove()
        loguru_logger.add(
            sys.stdout,
            level=level_name,
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=_format_record,
        )
        logging.basicConfig(
            handlers=[LoguruInterceptHandler()],
            level=numeric_level,
            force=True,
        )
        logging.captureWarnings(True)
        _configure_structlog(json_logs)
        _CONFIGURED = True

    if service_name:
        _SERVICE_NAME = service_name
        loguru_logger.configure(extra={"service": service_name})
        structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog bound logger with the given ``name``."""

    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


@contextmanager
def request_context(request_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Bind ``request_id`` and ``extra`` fields for the lifetime of the block."""

    extra.pop("request_id", None)
    rid = request_id or generate_request_id()
    token = _REQUEST_ID.set(rid)

    values = dict(extra)
    if _SERVICE_NAME:
        values.setdefault("service", _SERVICE_NAME)
    previous = structlog.contextvars.get_contextvars()
    keys = ["request_id", *values.keys()]
    structlog.contextvars.bind_contextvars(request_id=rid, **values)

    try:
        with loguru_logger.contextualize(request_id=rid):
            yield rid
    finally:
        structlog.contextvars.unbind_contextvars(*keys)
        restore = {key: previous[key] for key in keys if key in previous}
        if restore:
            structlog.contextvars.bind_contextvars(**restore)
        _REQUEST_ID.reset(token)
