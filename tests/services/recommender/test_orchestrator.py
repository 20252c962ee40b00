"""End-to-end tests for :class:`RecommendationOrchestrator` with fake dependencies."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from services.recommender.ai_enhancement import AIEnhancementService
from services.recommender.cache import CacheLayer, InMemoryCacheStore
from services.recommender.circuit_breaker import CircuitBreaker
from services.recommender.config import AISettings, CacheSettings, Settings
from services.recommender.errors import (
    DependencyError,
    InvalidInputError,
    NoMatchError,
    NoPackagesError,
)
from services.recommender.interfaces import RawCandidate
from services.recommender.models import (
    ReasoningResponse,
    RecommendationOptions,
    RecommendationSource,
    SelectionTier,
)
from services.recommender.normalizer import DrugNormalizer
from services.recommender.orchestrator import (
    NORMALIZATION_NAMESPACE,
    PACKAGE_NAMESPACE,
    RecommendationOrchestrator,
    build_orchestrator,
)

CONCEPT = RawCandidate(concept_id="314076", name="lisinopril 10 MG Oral Tablet", term_type="SCD")


@pytest.fixture
def catalog(provider, directory, make_package):
    provider.exact["lisinopril 10 mg tablet"] = [CONCEPT]
    provider.concepts["314076"] = CONCEPT
    directory.packages["314076"] = [
        make_package("00071-0156-30", 30),
        make_package("00071-0156-90", 90),
        make_package("00071-0156-60", 60, unit="ML", dosage_form="SOLUTION"),
        make_package("00071-0156-45", 45, active=False),
    ]
    return provider, directory


def _orchestrator(
    provider,
    directory,
    key_builder,
    *,
    reasoner=None,
    cache_settings: CacheSettings | None = None,
) -> RecommendationOrchestrator:
    ai_service = None
    if reasoner is not None:
        ai_service = AIEnhancementService(
            reasoner, CircuitBreaker("ai_reasoning"), timeout_seconds=1.0
        )
    return RecommendationOrchestrator(
        DrugNormalizer(provider, key_builder),
        directory,
        CacheLayer(InMemoryCacheStore()),
        key_builder,
        ai_service=ai_service,
        ai_enabled=reasoner is not None,
        cache_settings=cache_settings,
    )


@pytest.mark.anyio("asyncio")
async def test_recommends_package_matching_the_dosage_family(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)

    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    assert result.drug.concept_id == "314076"
    assert result.packages_considered == 2
    selection = result.recommendation.selection
    assert selection.selected.ndc == "00071-0156-90"
    assert selection.tier is SelectionTier.ADEQUATE
    assert selection.overfill_percentage == 50.0
    assert result.warnings == selection.warnings
    assert result.warnings[0].startswith("Significant overfill: 50.0%")
    assert result.recommendation.source is RecommendationSource.ALGORITHM
    assert result.metadata.used_ai is False
    assert result.metadata.ai_attempted is False
    assert result.metadata.algorithmic_fallback is True
    assert result.metadata.normalization_cached is False
    assert result.metadata.packages_cached is False
    assert result.metadata.execution_time_ms >= 0


@pytest.mark.anyio("asyncio")
async def test_repeat_requests_are_served_from_cache(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)

    first = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)
    second = await orchestrator.recommend_package("  lisinopril 10 MG tablet ", 60)

    assert second.metadata.normalization_cached is True
    assert second.metadata.packages_cached is True
    assert second.recommendation.selection == first.recommendation.selection
    assert len(provider.calls) == 1
    assert directory.calls == ["314076"]


@pytest.mark.anyio("asyncio")
async def test_skip_cache_refetches(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)
    await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    result = await orchestrator.recommend_package(
        "Lisinopril 10 mg tablet", 60, RecommendationOptions(skip_cache=True)
    )

    assert result.metadata.normalization_cached is False
    assert result.metadata.packages_cached is False
    assert directory.calls == ["314076", "314076"]


@pytest.mark.anyio("asyncio")
async def test_disabled_cache_never_serves_hits(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(
        provider, directory, key_builder, cache_settings=CacheSettings(enabled=False)
    )

    await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)
    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    assert result.metadata.normalization_cached is False
    assert len(directory.calls) == 2


@pytest.mark.anyio("asyncio")
async def test_namespace_invalidation_forces_package_refetch(
    catalog, key_builder, make_package
) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)
    await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)
    directory.packages["314076"].append(make_package("00071-0156-61", 60))

    removed = await orchestrator.cache.invalidate_by_prefix(PACKAGE_NAMESPACE)
    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    assert removed == 1
    assert result.metadata.normalization_cached is True
    assert result.metadata.packages_cached is False
    assert result.recommendation.selection.selected.ndc == "00071-0156-61"
    assert result.recommendation.selection.tier is SelectionTier.EXACT


@pytest.mark.anyio("asyncio")
async def test_numeric_input_resolves_as_concept_id(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)

    result = await orchestrator.recommend_package("314076", 90)

    assert result.normalization.strategy_used.value == "known_id"
    assert result.recommendation.selection.tier is SelectionTier.EXACT
    assert provider.calls == [("get_concept", "314076")]


@pytest.mark.anyio("asyncio")
async def test_invalid_quantity_fails_before_any_lookup(catalog, key_builder) -> None:
    provider, directory = catalog
    orchestrator = _orchestrator(provider, directory, key_builder)

    with pytest.raises(InvalidInputError):
        await orchestrator.recommend_package("Lisinopril 10 mg tablet", 0)

    assert provider.calls == []
    assert directory.calls == []


@pytest.mark.anyio("asyncio")
async def test_unknown_drug_raises_no_match(provider, directory, key_builder) -> None:
    orchestrator = _orchestrator(provider, directory, key_builder)

    with pytest.raises(NoMatchError):
        await orchestrator.recommend_package("unknownium", 30)


@pytest.mark.anyio("asyncio")
async def test_only_inactive_packages_raise_no_packages(
    provider, directory, key_builder, make_package
) -> None:
    provider.exact["lisinopril"] = [CONCEPT]
    directory.packages["314076"] = [make_package("00071-0156-30", 30, active=False)]
    orchestrator = _orchestrator(provider, directory, key_builder)

    with pytest.raises(NoPackagesError) as exc_info:
        await orchestrator.recommend_package("lisinopril", 30)

    assert exc_info.value.fields == {"concept_id": "314076"}


@pytest.mark.anyio("asyncio")
async def test_incompatible_dosage_forms_fall_back_to_all_active(
    provider, directory, key_builder, make_package
) -> None:
    provider.exact["lisinopril tablet"] = [CONCEPT]
    directory.packages["314076"] = [
        make_package("00071-0156-60", 60, unit="ML", dosage_form="SOLUTION"),
    ]
    orchestrator = _orchestrator(provider, directory, key_builder)

    result = await orchestrator.recommend_package("lisinopril tablet", 60)

    assert result.recommendation.selection.selected.ndc == "00071-0156-60"
    assert any("dosage form family" in warning for warning in result.warnings)


@pytest.mark.anyio("asyncio")
async def test_ai_enhancement_applies_when_selection_needs_review(
    catalog, key_builder
) -> None:
    provider, directory = catalog
    reasoner = AsyncMock()
    reasoner.recommend.return_value = ReasoningResponse(
        payload={
            "primaryRecommendation": {
                "ndc": "00071-0156-30",
                "confidenceScore": 0.7,
                "reasoning": "Two bottles of 30 avoid waste.",
            }
        }
    )
    orchestrator = _orchestrator(provider, directory, key_builder, reasoner=reasoner)

    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    assert result.recommendation.source is RecommendationSource.AI
    assert result.recommendation.selection.selected.ndc == "00071-0156-30"
    assert result.metadata.used_ai is True
    assert result.metadata.algorithmic_fallback is False
    assert result.explanation == "Two bottles of 30 avoid waste."


@pytest.mark.anyio("asyncio")
async def test_ai_failure_keeps_algorithmic_result(catalog, key_builder) -> None:
    provider, directory = catalog
    reasoner = AsyncMock()
    reasoner.recommend.side_effect = DependencyError("ai_reasoning", "down")
    orchestrator = _orchestrator(provider, directory, key_builder, reasoner=reasoner)

    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 60)

    assert result.recommendation.source is RecommendationSource.ALGORITHM
    assert result.recommendation.selection.selected.ndc == "00071-0156-90"
    assert result.metadata.ai_attempted is True
    assert result.metadata.used_ai is False
    assert "AI review unavailable (dependency_error)" in result.explanation


@pytest.mark.anyio("asyncio")
async def test_ai_is_skipped_for_clean_exact_matches(catalog, key_builder) -> None:
    provider, directory = catalog
    reasoner = AsyncMock()
    orchestrator = _orchestrator(provider, directory, key_builder, reasoner=reasoner)

    result = await orchestrator.recommend_package("Lisinopril 10 mg tablet", 90)

    reasoner.recommend.assert_not_awaited()
    assert result.metadata.ai_attempted is False


@pytest.mark.anyio("asyncio")
async def test_use_ai_option_disables_enhancement(catalog, key_builder) -> None:
    provider, directory = catalog
    reasoner = AsyncMock()
    orchestrator = _orchestrator(provider, directory, key_builder, reasoner=reasoner)

    await orchestrator.recommend_package(
        "Lisinopril 10 mg tablet", 60, RecommendationOptions(use_ai=False)
    )

    reasoner.recommend.assert_not_awaited()


@pytest.mark.anyio("asyncio")
async def test_build_orchestrator_wires_production_clients() -> None:
    settings = Settings(ai=AISettings(enabled=False))

    orchestrator = build_orchestrator(settings)
    try:
        assert orchestrator.ai_enabled is False
        assert orchestrator.ai_service is None
        assert orchestrator.normalizer.settings == settings.normalization
    finally:
        await orchestrator.aclose()


def test_cache_namespaces_are_valid(key_builder) -> None:
    key_builder.build(NORMALIZATION_NAMESPACE, "name", "lisinopril")
    key_builder.build(PACKAGE_NAMESPACE, "314076")
