"""HTTP helpers and exception definitions used across services."""

from .errors import (
    PROBLEM_TYPE_BASE,
    ProblemDetails,
    ProblemDetailsException,
    ProviderUnavailableError,
    problem_type,
    register_exception_handlers,
)

__all__ = [
    "PROBLEM_TYPE_BASE",
    "ProblemDetails",
    "ProblemDetailsException",
    "ProviderUnavailableError",
    "problem_type",
    "register_exception_handlers",
]
