"""Problem details (RFC 7807) payloads and FastAPI exception handlers."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.observability.logger import get_logger

__all__ = [
    "PROBLEM_TYPE_BASE",
    "ProblemDetails",
    "ProblemDetailsException",
    "ProviderUnavailableError",
    "problem_type",
    "register_exception_handlers",
]

logger = get_logger(__name__)

PROBLEM_TYPE_BASE = "https://ndc-recommender.dev/problems/"


def problem_type(slug: str) -> str:
    """Return the absolute problem type URI for ``slug``."""

    return f"{PROBLEM_TYPE_BASE}{slug}"


class ProblemDetails(BaseModel):
    """Representation of an RFC 7807 problem details payload."""

    type: str = Field(default="about:blank", description="URI identifying the error type")
    title: str = Field(default="An error occurred", description="Short human-readable summary")
    status: int = Field(default=status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail: str | None = Field(default=None, description="Detailed description of the error")
    instance: str | None = Field(
        default=None, description="URI identifying the specific occurrence"
    )
    errors: list[Any] | None = Field(
        default=None, description="Detailed validation errors when applicable"
    )

    model_config = ConfigDict(extra="allow")


class ProblemDetailsException(RuntimeError):
    """Base exception carrying structured problem details metadata."""

    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_title = "Service Error"
    default_type = "about:blank"

    def __init__(
        self,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        type_uri: str | None = None,
        instance: str | None = None,
        extensions: Mapping[str, Any] | None = None,
    ) -> None:
        message = detail or title or self.default_title
        super().__init__(message)
        self.detail = message
        self.status_code = status_code or self.default_status_code
        self.title = title or self.default_title
        self.problem_type = type_uri or self.default_type
        self.instance = instance
        self.extensions = dict(extensions or {})

    def to_problem_details(self, *, instance: str | None = None) -> ProblemDetails:
        """Return a :class:`ProblemDetails` representation of the exception."""

        return ProblemDetails(
            type=self.problem_type,
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=instance or self.instance,
            **self.extensions,
        )


class ProviderUnavailableError(ProblemDetailsException):
    """Raised when an LLM provider cannot be used due to configuration or outages."""

    default_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_title = "Provider Unavailable"
    default_type = problem_type("provider-unavailable")

    def __init__(
        self,
        provider: str,
        *,
        detail: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.provider = provider
        self.reason = reason
        extensions: dict[str, Any] = {"provider": provider}
        if reason:
            extensions["reason"] = reason
        super().__init__(
            detail=detail or f"The '{provider}' provider is unavailable.",
            extensions=extensions,
        )


def _problem_response(problem: ProblemDetails) -> JSONResponse:
    payload = problem.model_dump(mode="json", exclude_none=True)
    return JSONResponse(
        payload,
        status_code=problem.status,
        media_type="application/problem+json",
    )


def _status_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "HTTP Error"


def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)
    detail = http_exc.detail if isinstance(http_exc.detail, str) else None
    problem = ProblemDetails(
        title=_status_title(http_exc.status_code),
        status=http_exc.status_code,
        detail=detail,
        instance=request.url.path,
    )
    return _problem_response(problem)


def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    validation_error = cast(RequestValidationError, exc)
    # Echoed inputs may contain drug names or free text; only locations are kept.
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in validation_error.errors()
    ]
    problem = ProblemDetails(
        type=problem_type("request-validation"),
        title="Request Validation Failed",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="One or more request parameters failed validation.",
        instance=request.url.path,
        errors=errors,
    )
    return _problem_response(problem)


def _problem_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    problem_exception = cast(ProblemDetailsException, exc)
    logger.info(
        "problem_response",
        status=problem_exception.status_code,
        problem_type=problem_exception.problem_type,
        path=request.url.path,
    )
    return _problem_response(
        problem_exception.to_problem_details(instance=request.url.path)
    )


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error_type=type(exc).__name__, path=request.url.path)
    problem = ProblemDetails(
        type=problem_type("internal-server-error"),
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing the request.",
        instance=request.url.path,
    )
    return _problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Register shared exception handlers that emit RFC 7807 problem details."""

    app.add_exception_handler(ProblemDetailsException, _problem_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
