"""FastAPI application exposing NDC package recommendations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request, status
from pydantic import Field, model_validator

from shared.http.errors import register_exception_handlers
from shared.models import CamelModel
from shared.observability.logger import configure_logging, get_logger
from shared.observability.middleware import CorrelationIdMiddleware, RequestTimingMiddleware

from .config import Settings, get_settings
from .models import (
    AIUsageSnapshot,
    BatchNormalizationItem,
    CircuitBreakerState,
    DrugNormalizationResult,
    FillPrecision,
    RecommendationOptions,
    RecommendationResult,
)
from .orchestrator import RecommendationOrchestrator, build_orchestrator
from .package_selector import fill_precision

logger = get_logger(__name__)

MAX_BATCH_SIZE = 50


class RecommendationRequest(CamelModel):
    drug_name: Optional[str] = Field(default=None, description="Free-text drug name")
    rxcui: Optional[str] = Field(default=None, description="Known RxNorm concept id")
    quantity: float = Field(description="Total quantity to dispense")
    use_ai: bool = True
    skip_cache: bool = False

    @model_validator(mode="after")
    def _one_identifier(self) -> "RecommendationRequest":
        if bool(self.drug_name) == bool(self.rxcui):
            raise ValueError("Provide exactly one of drugName or rxcui.")
        return self


class NormalizationRequest(CamelModel):
    drug_name: str


class BatchNormalizationRequest(CamelModel):
    drug_names: list[str] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class BatchNormalizationResponse(CamelModel):
    items: list[BatchNormalizationItem]


class FillPrecisionRequest(CamelModel):
    package_quantity: float = Field(gt=0)
    required_quantity: float


class AIUsageResponse(CamelModel):
    enabled: bool
    usage: Optional[AIUsageSnapshot] = None
    breaker: Optional[CircuitBreakerState] = None


def get_orchestrator(request: Request) -> RecommendationOrchestrator:
    """Return the orchestrator built for this application instance."""

    return request.app.state.orchestrator


def create_app(
    *,
    settings: Settings | None = None,
    orchestrator: RecommendationOrchestrator | None = None,
) -> FastAPI:
    """Build the application; ``orchestrator`` overrides production wiring."""

    resolved = settings or get_settings()
    configure_logging(
        service_name=resolved.app.service_name,
        level=resolved.logging.level,
        json_logs=resolved.logging.json_logs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = orchestrator is None
        app.state.orchestrator = orchestrator or build_orchestrator(resolved)
        logger.info("recommender_started", ai_enabled=app.state.orchestrator.ai_enabled)
        try:
            yield
        finally:
            if owned:
                await app.state.orchestrator.aclose()

    app = FastAPI(title="NDC Package Recommender", lifespan=lifespan)
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(app)

    @app.get("/health", tags=["health"])
    async def health(
        service: RecommendationOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, object]:
        """Return a simple health payload for orchestration checks."""

        return {
            "status": "ok",
            "service": resolved.app.service_name,
            "aiEnabled": service.ai_enabled,
        }

    @app.post(
        "/recommendations",
        response_model=RecommendationResult,
        status_code=status.HTTP_200_OK,
        tags=["recommendations"],
    )
    async def recommend(
        payload: RecommendationRequest,
        service: RecommendationOrchestrator = Depends(get_orchestrator),
    ) -> RecommendationResult:
        return await service.recommend_package(
            payload.rxcui or payload.drug_name or "",
            payload.quantity,
            RecommendationOptions(use_ai=payload.use_ai, skip_cache=payload.skip_cache),
        )

    @app.post(
        "/normalizations",
        response_model=DrugNormalizationResult,
        tags=["normalization"],
    )
    async def normalize(
        payload: NormalizationRequest,
        service: RecommendationOrchestrator = Depends(get_orchestrator),
    ) -> DrugNormalizationResult:
        result, _ = await service.resolve_drug(payload.drug_name)
        return result

    @app.post(
        "/normalizations/batch",
        response_model=BatchNormalizationResponse,
        tags=["normalization"],
    )
    async def normalize_batch(
        payload: BatchNormalizationRequest,
        service: RecommendationOrchestrator = Depends(get_orchestrator),
    ) -> BatchNormalizationResponse:
        items = await service.normalizer.normalize_batch(payload.drug_names)
        return BatchNormalizationResponse(items=items)

    @app.post("/fill-precision", response_model=FillPrecision, tags=["packages"])
    async def compute_fill_precision(payload: FillPrecisionRequest) -> FillPrecision:
        return fill_precision(payload.package_quantity, payload.required_quantity)

    @app.get("/ai/usage", response_model=AIUsageResponse, tags=["ai"])
    async def ai_usage(
        service: RecommendationOrchestrator = Depends(get_orchestrator),
    ) -> AIUsageResponse:
        ai = service.ai_service
        if ai is None:
            return AIUsageResponse(enabled=False)
        return AIUsageResponse(
            enabled=service.ai_enabled,
            usage=ai.usage(),
            breaker=ai.breaker.state(),
        )

    return app


__all__ = [
    "AIUsageResponse",
    "BatchNormalizationRequest",
    "FillPrecisionRequest",
    "NormalizationRequest",
    "RecommendationRequest",
    "create_app",
    "get_orchestrator",
]
