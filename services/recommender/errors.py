"""Tagged error hierarchy for the recommendation pipeline.

Every error carries an :class:`ErrorKind`; callers branch on ``error.kind``
instead of on exception classes. Each kind maps to exactly one HTTP status
and problem title through :data:`ERROR_KIND_PROBLEMS`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, NamedTuple

from fastapi import status

from shared.http.errors import ProblemDetailsException, problem_type


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NO_MATCH = "no_match"
    NO_PACKAGES = "no_packages"
    CIRCUIT_OPEN = "circuit_open"
    DEPENDENCY_TIMEOUT = "dependency_timeout"
    DEPENDENCY_ERROR = "dependency_error"
    CACHE_UNAVAILABLE = "cache_unavailable"


class ProblemMapping(NamedTuple):
    status_code: int
    title: str


ERROR_KIND_PROBLEMS: dict[ErrorKind, ProblemMapping] = {
    ErrorKind.INVALID_INPUT: ProblemMapping(status.HTTP_400_BAD_REQUEST, "Invalid Input"),
    ErrorKind.NO_MATCH: ProblemMapping(status.HTTP_404_NOT_FOUND, "Drug Not Found"),
    ErrorKind.NO_PACKAGES: ProblemMapping(status.HTTP_404_NOT_FOUND, "No Packages Available"),
    ErrorKind.CIRCUIT_OPEN: ProblemMapping(
        status.HTTP_503_SERVICE_UNAVAILABLE, "Dependency Circuit Open"
    ),
    ErrorKind.DEPENDENCY_TIMEOUT: ProblemMapping(
        status.HTTP_504_GATEWAY_TIMEOUT, "Dependency Timeout"
    ),
    ErrorKind.DEPENDENCY_ERROR: ProblemMapping(status.HTTP_502_BAD_GATEWAY, "Dependency Error"),
    ErrorKind.CACHE_UNAVAILABLE: ProblemMapping(
        status.HTTP_503_SERVICE_UNAVAILABLE, "Cache Unavailable"
    ),
}


class RecommendationError(ProblemDetailsException):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.DEPENDENCY_ERROR

    def __init__(self, detail: str, **fields: Any) -> None:
        mapping = ERROR_KIND_PROBLEMS[self.kind]
        self.fields: dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
        extensions: dict[str, Any] = {"kind": self.kind.value, **self.fields}
        super().__init__(
            detail=detail,
            status_code=mapping.status_code,
            title=mapping.title,
            type_uri=problem_type(self.kind.value.replace("_", "-")),
            extensions=extensions,
        )

    def to_dict(self) -> Mapping[str, Any]:
        """Return a compact structured description used in batch results."""

        return {"kind": self.kind.value, "detail": self.detail, **self.fields}


class InvalidInputError(RecommendationError):
    """Raised for malformed drug names, identifiers or quantities."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, detail: str, *, field: str | None = None) -> None:
        super().__init__(detail, field=field)


class NoMatchError(RecommendationError):
    """Raised when no normalization strategy produced a candidate."""

    kind = ErrorKind.NO_MATCH

    def __init__(
        self,
        detail: str = "No matching drug concept was found.",
        *,
        strategies_tried: list[str] | None = None,
    ) -> None:
        super().__init__(detail, strategies_tried=strategies_tried)


class NoPackagesError(RecommendationError):
    """Raised when no active package is available for a concept."""

    kind = ErrorKind.NO_PACKAGES

    def __init__(
        self,
        detail: str = "No active packages are available.",
        *,
        concept_id: str | None = None,
    ) -> None:
        super().__init__(detail, concept_id=concept_id)


class CircuitOpenError(RecommendationError):
    """Raised by the circuit breaker while it rejects calls."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        dependency: str,
        *,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            f"Calls to '{dependency}' are temporarily suspended.",
            dependency=dependency,
            retry_after=round(retry_after, 3) if retry_after is not None else None,
        )


class DependencyTimeoutError(RecommendationError):
    """Raised when an external dependency exceeds its time budget."""

    kind = ErrorKind.DEPENDENCY_TIMEOUT

    def __init__(self, dependency: str, *, timeout_seconds: float | None = None) -> None:
        super().__init__(
            f"'{dependency}' did not respond in time.",
            dependency=dependency,
            timeout_seconds=timeout_seconds,
        )


class DependencyError(RecommendationError):
    """Raised when an external dependency fails or returns an unusable body."""

    kind = ErrorKind.DEPENDENCY_ERROR

    def __init__(
        self,
        dependency: str,
        detail: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            detail or f"'{dependency}' returned an error.",
            dependency=dependency,
            upstream_status=status_code,
        )


class CacheUnavailableError(RecommendationError):
    """Raised by cache stores that cannot serve a request."""

    kind = ErrorKind.CACHE_UNAVAILABLE

    def __init__(self, detail: str = "The cache store is unavailable.") -> None:
        super().__init__(detail)


__all__ = [
    "CacheUnavailableError",
    "CircuitOpenError",
    "DependencyError",
    "DependencyTimeoutError",
    "ERROR_KIND_PROBLEMS",
    "ErrorKind",
    "InvalidInputError",
    "NoMatchError",
    "NoPackagesError",
    "ProblemMapping",
    "RecommendationError",
]
