"""End-to-end recommendation pipeline.

normalize -> fetch packages -> filter -> select -> optionally AI-enhance ->
assemble. Normalization and package lookups are cached; the AI layer can
only improve a result, never fail it.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Sequence

from shared.config.settings import LLMSettings, get_settings as get_llm_settings
from shared.http.errors import ProviderUnavailableError
from shared.llm import LLMProvider
from shared.observability.logger import get_logger

from .ai_enhancement import AIEnhancementService, EnhancementContext
from .cache import CacheLayer, InMemoryCacheStore
from .circuit_breaker import CircuitBreaker
from .clients import OpenFDAClient, RxNormClient
from .config import CacheSettings, Settings
from .errors import NoPackagesError
from .interfaces import PackageDirectory
from .keys import CacheKeyBuilder
from .models import (
    AIRecommendationResult,
    DrugNormalizationResult,
    Package,
    RecommendationMetadata,
    RecommendationOptions,
    RecommendationResult,
    RecommendationSource,
    SelectionTier,
)
from .normalizer import DrugNormalizer
from .package_selector import choose_package, validate_quantity
from .parsing import dosage_form_family, forms_compatible
from .reasoning import DEPENDENCY_NAME, LLMReasoningClient

logger = get_logger(__name__)

NORMALIZATION_NAMESPACE = "drug.norm"
PACKAGE_NAMESPACE = "ndc.lookup"

Closer = Callable[[], Awaitable[Any]]


def _dedupe(messages: Sequence[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(message for message in messages if message))


class RecommendationOrchestrator:
    """Coordinate normalization, package lookup, selection and AI enhancement."""

    def __init__(
        self,
        normalizer: DrugNormalizer,
        directory: PackageDirectory,
        cache: CacheLayer,
        key_builder: CacheKeyBuilder,
        *,
        ai_service: AIEnhancementService | None = None,
        ai_enabled: bool = False,
        cache_settings: CacheSettings | None = None,
        closers: Sequence[Closer] = (),
    ) -> None:
        self._normalizer = normalizer
        self._directory = directory
        self._cache = cache
        self._keys = key_builder
        self._ai_service = ai_service
        self._ai_enabled = ai_enabled
        self._cache_settings = cache_settings or CacheSettings()
        self._closers = tuple(closers)

    @property
    def normalizer(self) -> DrugNormalizer:
        return self._normalizer

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    @property
    def ai_service(self) -> AIEnhancementService | None:
        return self._ai_service

    @property
    def ai_enabled(self) -> bool:
        return self._ai_enabled and self._ai_service is not None

    async def aclose(self) -> None:
        for close in self._closers:
            await close()

    # -- cached lookups ----------------------------------------------------

    async def resolve_drug(
        self, drug_name_or_id: str, *, skip_cache: bool = False
    ) -> tuple[DrugNormalizationResult, bool]:
        """Normalize a name, or resolve an all-digit input as a concept id."""

        value = str(drug_name_or_id).strip()
        by_id = value.isdigit()

        async def _compute() -> DrugNormalizationResult:
            if by_id:
                return await self._normalizer.normalize_by_known_id(value)
            return await self._normalizer.normalize(value)

        key = self._keys.build(NORMALIZATION_NAMESPACE, "id" if by_id else "name", value)
        lookup = await self._cache.get_or_compute(
            key,
            _compute,
            ttl_seconds=self._cache_settings.normalization_ttl_seconds,
            skip_cache=skip_cache or not self._cache_settings.enabled,
        )
        return lookup.value, lookup.cached

    async def fetch_packages(
        self, concept_id: str, *, skip_cache: bool = False
    ) -> tuple[tuple[Package, ...], bool]:
        async def _compute() -> tuple[Package, ...]:
            return tuple(await self._directory.get_packages(concept_id))

        lookup = await self._cache.get_or_compute(
            self._keys.build(PACKAGE_NAMESPACE, concept_id),
            _compute,
            ttl_seconds=self._cache_settings.package_ttl_seconds,
            skip_cache=skip_cache or not self._cache_settings.enabled,
        )
        return lookup.value, lookup.cached

    # -- pipeline -----------------------------------------------------------

    async def recommend_package(
        self,
        drug_name_or_id: str,
        required_quantity: float,
        options: RecommendationOptions | None = None,
    ) -> RecommendationResult:
        """Recommend the best package of ``drug_name_or_id`` for a quantity.

        Raises only input and no-result errors (``invalid_input``,
        ``no_match``, ``no_packages``) plus package-directory failures.
        """

        started = time.perf_counter()
        opts = options or RecommendationOptions()
        quantity = validate_quantity(required_quantity)

        normalization, normalization_cached = await self.resolve_drug(
            drug_name_or_id, skip_cache=opts.skip_cache
        )
        drug = normalization.best
        packages, packages_cached = await self.fetch_packages(
            drug.concept_id, skip_cache=opts.skip_cache
        )

        warnings: list[str] = []
        if normalization.ambiguous:
            warnings.append(
                f"Drug name matched several concepts with similar confidence; verify "
                f"'{drug.name}' (RxCUI {drug.concept_id}) is the intended product."
            )

        active = [package for package in packages if package.is_active]
        if not active:
            raise NoPackagesError(
                "No active packages are available for this drug.",
                concept_id=drug.concept_id,
            )
        candidates = active
        if drug.dosage_form:
            compatible = [p for p in active if forms_compatible(p.dosage_form, drug.dosage_form)]
            if compatible:
                candidates = compatible
            else:
                warnings.append(
                    f"No active packages match the {dosage_form_family(drug.dosage_form).value} "
                    "dosage form family; all active packages were considered."
                )

        selection = choose_package(candidates, quantity)

        ai_attempted = False
        recommendation = AIRecommendationResult(
            source=RecommendationSource.ALGORITHM, selection=selection
        )
        needs_review = (
            selection.tier is not SelectionTier.EXACT
            or bool(selection.warnings)
            or normalization.ambiguous
        )
        if self.ai_enabled and opts.use_ai and needs_review:
            assert self._ai_service is not None
            ai_attempted = True
            recommendation = await self._ai_service.enhance(
                selection,
                EnhancementContext(drug=drug, packages=candidates, required_quantity=quantity),
            )

        used_ai = recommendation.source is RecommendationSource.AI
        explanation = recommendation.selection.explanation
        if ai_attempted and not used_ai:
            explanation = (
                f"{explanation}. AI review unavailable ({recommendation.fallback_reason}); "
                "algorithmic selection used"
            )

        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        logger.info(
            "recommendation_completed",
            query_fingerprint=normalization.query_fingerprint,
            concept_id=drug.concept_id,
            ndc=recommendation.selection.selected.ndc,
            tier=recommendation.selection.tier.value,
            used_ai=used_ai,
            ai_attempted=ai_attempted,
            duration_ms=elapsed_ms,
        )
        return RecommendationResult(
            drug=drug,
            normalization=normalization,
            recommendation=recommendation,
            packages_considered=len(candidates),
            warnings=_dedupe([*warnings, *recommendation.selection.warnings]),
            explanation=explanation,
            metadata=RecommendationMetadata(
                execution_time_ms=elapsed_ms,
                used_ai=used_ai,
                ai_attempted=ai_attempted,
                algorithmic_fallback=not used_ai,
                normalization_cached=normalization_cached,
                packages_cached=packages_cached,
            ),
        )


def _build_ai_service(
    settings: Settings, llm_settings: LLMSettings
) -> AIEnhancementService | None:
    if not settings.ai.enabled:
        return None
    try:
        reasoner = LLMReasoningClient.from_settings(settings.ai, llm_settings)
    except ProviderUnavailableError as exc:
        logger.warning("ai_enhancement_disabled", provider=exc.provider, reason=exc.reason)
        return None
    breaker = CircuitBreaker(
        DEPENDENCY_NAME,
        failure_threshold=settings.ai.failure_threshold,
        cooldown_seconds=settings.ai.cooldown_seconds,
    )
    return AIEnhancementService(
        reasoner,
        breaker,
        timeout_seconds=settings.ai.timeout_seconds,
        pricing=LLMProvider.resolve(settings.ai.provider).pricing,
    )


def build_orchestrator(
    settings: Settings,
    *,
    llm_settings: LLMSettings | None = None,
) -> RecommendationOrchestrator:
    """Wire the production collaborators described by ``settings``."""

    key_builder = CacheKeyBuilder(settings.cache.key_secret)
    rxnorm = RxNormClient.from_settings(settings.rxnorm)
    openfda = OpenFDAClient.from_settings(settings.openfda)
    cache = CacheLayer(
        InMemoryCacheStore(max_entries=settings.cache.max_entries),
        default_ttl_seconds=settings.cache.package_ttl_seconds,
    )
    ai_service = _build_ai_service(settings, llm_settings or get_llm_settings())
    return RecommendationOrchestrator(
        DrugNormalizer(rxnorm, key_builder, settings.normalization),
        openfda,
        cache,
        key_builder,
        ai_service=ai_service,
        ai_enabled=settings.ai.enabled,
        cache_settings=settings.cache,
        closers=(rxnorm.aclose, openfda.aclose),
    )


__all__ = [
    "NORMALIZATION_NAMESPACE",
    "PACKAGE_NAMESPACE",
    "RecommendationOrchestrator",
    "build_orchestrator",
]
