"""Optional AI re-ranking of the algorithmic package selection.

Every failure mode (open circuit, timeout, dependency error, unusable reply)
degrades to the algorithmic selection; nothing here raises to the caller.
"""

from __future__ import annotations

import asyncio
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from shared.llm import TokenPricing
from shared.observability.logger import get_logger

from .circuit_breaker import CircuitBreaker
from .errors import CircuitOpenError, DependencyError, ErrorKind, RecommendationError
from .interfaces import ReasoningClient
from .models import (
    AIRecommendationResult,
    AIUsageSnapshot,
    NormalizationCandidate,
    Package,
    PackageSelection,
    ReasoningResponse,
    RecommendationSource,
    SelectionTier,
)
from .package_selector import build_selection
from .prompts import build_reasoning_request
from .reasoning import DEPENDENCY_NAME

logger = get_logger(__name__)


@dataclass(frozen=True)
class EnhancementContext:
    drug: NormalizationCandidate
    packages: Sequence[Package]
    required_quantity: float


@dataclass(frozen=True)
class _AIChoice:
    package: Package
    confidence: float
    reasoning: str | None


@dataclass
class _UsageCounters:
    calls: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    short_circuits: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost_usd: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _digits(ndc: str) -> str:
    return "".join(ch for ch in ndc if ch.isdigit())


def _tier_for(package: Package, required: float) -> SelectionTier:
    quantity = package.package_size.quantity
    if quantity == required:
        return SelectionTier.EXACT
    if quantity > required:
        return SelectionTier.ADEQUATE
    return SelectionTier.INSUFFICIENT


def validate_ai_payload(
    payload: Mapping[str, Any], packages: Sequence[Package]
) -> _AIChoice:
    """Check the reply shape and resolve its NDC against the active candidates."""

    primary = payload.get("primaryRecommendation")
    if not isinstance(primary, Mapping):
        raise DependencyError(DEPENDENCY_NAME, "Reply is missing primaryRecommendation.")
    ndc = primary.get("ndc")
    if not isinstance(ndc, str) or not ndc.strip():
        raise DependencyError(DEPENDENCY_NAME, "Reply is missing a recommended NDC.")
    confidence = primary.get("confidenceScore")
    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not math.isfinite(confidence)
        or not 0.0 <= confidence <= 1.0
    ):
        raise DependencyError(DEPENDENCY_NAME, "Reply confidenceScore is outside [0, 1].")

    wanted = _digits(ndc)
    match = next(
        (p for p in packages if p.is_active and _digits(p.ndc) == wanted),
        None,
    )
    if match is None:
        raise DependencyError(DEPENDENCY_NAME, "Reply recommends an NDC outside the candidates.")

    reasoning = primary.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        overall = payload.get("reasoning")
        reasoning = overall.get("rationale") if isinstance(overall, Mapping) else None
    return _AIChoice(
        package=match,
        confidence=float(confidence),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


class AIEnhancementService:
    """Ask the reasoning dependency to confirm or improve a selection."""

    def __init__(
        self,
        reasoner: ReasoningClient,
        breaker: CircuitBreaker,
        *,
        timeout_seconds: float = 30.0,
        pricing: TokenPricing | None = None,
    ) -> None:
        self._reasoner = reasoner
        self._breaker = breaker
        self._timeout = timeout_seconds
        self._pricing = pricing
        self._usage = _UsageCounters()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def enhance(
        self, selection: PackageSelection, context: EnhancementContext
    ) -> AIRecommendationResult:
        try:
            is_probe = self._breaker.before_call()
        except CircuitOpenError as exc:
            self._bump(short_circuits=1)
            logger.info("ai_enhancement_short_circuited", breaker=self._breaker.name)
            return self._fallback(selection, exc.kind.value)

        try:
            return await self._consult(selection, context)
        except BaseException:
            # Cancelled before an outcome; hand the probe slot back.
            if is_probe:
                self._breaker.release()
            raise

    async def _consult(
        self, selection: PackageSelection, context: EnhancementContext
    ) -> AIRecommendationResult:
        self._bump(calls=1)
        try:
            request = build_reasoning_request(
                context.drug, context.packages, context.required_quantity, selection
            )
            response = await asyncio.wait_for(
                self._reasoner.recommend(request), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            return self._failed(selection, ErrorKind.DEPENDENCY_TIMEOUT.value, timeouts=1)
        except RecommendationError as exc:
            return self._failed(selection, exc.kind.value)
        except Exception as exc:
            logger.warning("ai_enhancement_unexpected_error", error_type=type(exc).__name__)
            return self._failed(selection, ErrorKind.DEPENDENCY_ERROR.value)

        self._record_tokens(response)
        try:
            choice = validate_ai_payload(response.payload, context.packages)
        except DependencyError as exc:
            logger.warning("ai_enhancement_invalid_reply", detail=exc.detail)
            return self._failed(selection, "invalid_response")

        self._breaker.record_success()
        self._bump(successes=1)
        enhanced = build_selection(
            choice.package,
            context.required_quantity,
            _tier_for(choice.package, context.required_quantity),
            choice.reasoning or selection.explanation,
        )
        logger.info(
            "ai_enhancement_applied",
            ndc=choice.package.ndc,
            confidence=choice.confidence,
            changed=choice.package.ndc != selection.selected.ndc,
        )
        return AIRecommendationResult(
            source=RecommendationSource.AI,
            selection=enhanced,
            confidence_score=choice.confidence,
            reasoning=choice.reasoning,
        )

    def usage(self) -> AIUsageSnapshot:
        counters = self._usage
        with counters.lock:
            return AIUsageSnapshot(
                calls=counters.calls,
                successes=counters.successes,
                failures=counters.failures,
                timeouts=counters.timeouts,
                short_circuits=counters.short_circuits,
                prompt_tokens=counters.prompt_tokens,
                completion_tokens=counters.completion_tokens,
                estimated_cost_usd=round(counters.estimated_cost_usd, 6),
            )

    def _failed(
        self, selection: PackageSelection, reason: str, *, timeouts: int = 0
    ) -> AIRecommendationResult:
        self._breaker.record_failure()
        self._bump(failures=1, timeouts=timeouts)
        logger.warning("ai_enhancement_fallback", reason=reason, breaker=self._breaker.name)
        return self._fallback(selection, reason)

    @staticmethod
    def _fallback(selection: PackageSelection, reason: str) -> AIRecommendationResult:
        return AIRecommendationResult(
            source=RecommendationSource.ALGORITHM,
            selection=selection,
            fallback_reason=reason,
        )

    def _bump(self, **deltas: int) -> None:
        counters = self._usage
        with counters.lock:
            for name, delta in deltas.items():
                setattr(counters, name, getattr(counters, name) + delta)

    def _record_tokens(self, response: ReasoningResponse) -> None:
        cost = 0.0
        if self._pricing is not None:
            cost = self._pricing.estimate(response.prompt_tokens, response.completion_tokens)
        counters = self._usage
        with counters.lock:
            counters.prompt_tokens += response.prompt_tokens
            counters.completion_tokens += response.completion_tokens
            counters.estimated_cost_usd += cost


__all__ = ["AIEnhancementService", "EnhancementContext", "validate_ai_payload"]
