"""Retry helpers for outbound HTTP calls, powered by Tenacity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from shared.observability.logger import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def is_transient_http_error(exc: BaseException) -> bool:
    """Return ``True`` for transport failures and retryable status codes."""

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for Tenacity retry execution."""

    attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 2.0
    backoff_multiplier: float = 2.0
    retry_on: Callable[[BaseException], bool] = is_transient_http_error


def _log_retry(label: str, retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None and outcome.failed else None
    logger.warning(
        "dependency_retry",
        dependency=label,
        attempt=retry_state.attempt_number,
        wait=getattr(retry_state.next_action, "sleep", None),
        error_type=type(error).__name__ if error else None,
    )


async def call_async_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    label: str = "dependency",
    **kwargs: Any,
) -> T:
    """Execute async ``func`` with Tenacity retry semantics.

    The final exception is re-raised unchanged once attempts are exhausted.
    """

    resolved_policy = policy or RetryPolicy()
    retrying = AsyncRetrying(
        retry=retry_if_exception(resolved_policy.retry_on),
        stop=stop_after_attempt(resolved_policy.attempts),
        wait=wait_exponential(
            multiplier=resolved_policy.initial_delay,
            min=resolved_policy.initial_delay,
            max=resolved_policy.max_delay,
            exp_base=resolved_policy.backoff_multiplier,
        ),
        before_sleep=lambda state: _log_retry(label, state),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)

    raise RuntimeError("Async retry loop terminated without executing the function.")


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RetryPolicy",
    "call_async_with_retry",
    "is_transient_http_error",
]
