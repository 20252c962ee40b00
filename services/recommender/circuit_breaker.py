"""Circuit breaker guarding the AI reasoning dependency.

closed -> open after ``failure_threshold`` consecutive failures; open ->
half_open lazily on the first call after ``cooldown_seconds``; half_open lets
exactly one probe through, whose outcome closes or reopens the circuit.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from shared.observability.logger import get_logger

from .errors import CircuitOpenError
from .models import BreakerStatus, CircuitBreakerState

logger = get_logger(__name__)


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive")
        self.name = name
        self._failure_threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._status = BreakerStatus.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float | None = None
        self._last_probe_time: float | None = None
        self._probe_in_flight = False

    def before_call(self) -> bool:
        """Admit the call or raise :class:`CircuitOpenError`.

        Returns ``True`` when the admitted call is the half-open probe.

        Every admitted call must be followed by exactly one of
        :meth:`record_success`, :meth:`record_failure` or :meth:`release`.
        """

        with self._lock:
            if self._status is BreakerStatus.CLOSED:
                return False
            now = self._clock()
            if self._status is BreakerStatus.OPEN:
                assert self._last_failure_time is not None
                remaining = self._last_failure_time + self._cooldown - now
                if remaining > 0:
                    raise CircuitOpenError(self.name, retry_after=remaining)
                self._transition(BreakerStatus.HALF_OPEN)
            if self._probe_in_flight:
                raise CircuitOpenError(self.name)
            self._probe_in_flight = True
            self._last_probe_time = now
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._status is BreakerStatus.OPEN:
                # A straggler admitted before the circuit opened; only a probe closes it.
                return
            self._consecutive_failures = 0
            self._probe_in_flight = False
            if self._status is BreakerStatus.HALF_OPEN:
                self._transition(BreakerStatus.CLOSED)

    def release(self) -> None:
        """Free the probe slot of a probe that ended without an outcome.

        Only the caller whose :meth:`before_call` returned ``True`` may release.
        """

        with self._lock:
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._consecutive_failures += 1
            self._last_failure_time = now
            if self._status is BreakerStatus.HALF_OPEN:
                self._probe_in_flight = False
                self._transition(BreakerStatus.OPEN)
            elif (
                self._status is BreakerStatus.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._transition(BreakerStatus.OPEN)

    def state(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                status=self._status,
                consecutive_failures=self._consecutive_failures,
                last_failure_time=self._last_failure_time,
                last_probe_time=self._last_probe_time,
            )

    def reset(self) -> None:
        """Force the breaker closed and clear its counters."""

        with self._lock:
            self._consecutive_failures = 0
            self._last_failure_time = None
            self._last_probe_time = None
            self._probe_in_flight = False
            if self._status is not BreakerStatus.CLOSED:
                self._transition(BreakerStatus.CLOSED)

    def _transition(self, status: BreakerStatus) -> None:
        # Caller holds the lock.
        previous, self._status = self._status, status
        logger.warning(
            "circuit_breaker_transition",
            breaker=self.name,
            previous=previous.value,
            current=status.value,
            consecutive_failures=self._consecutive_failures,
        )


__all__ = ["CircuitBreaker"]
