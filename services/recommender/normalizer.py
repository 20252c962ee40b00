"""Drug-name normalization through an ordered strategy fallback chain.

The chain is exact lookup, then approximate (fuzzy) search, then spelling
suggestions. The first strategy whose best candidate reaches
``min_confidence`` wins; spelling is the terminal tier and is accepted with
whatever confidence it produced.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from shared.observability.logger import get_logger

from .config import NormalizationSettings
from .errors import (
    DependencyError,
    DependencyTimeoutError,
    InvalidInputError,
    NoMatchError,
    RecommendationError,
)
from .interfaces import NormalizationProvider, RawCandidate
from .keys import CacheKeyBuilder
from .models import (
    BatchNormalizationItem,
    DrugNormalizationResult,
    NormalizationCandidate,
    NormalizationStrategy,
)
from .parsing import ParsedDrugName, extract_dosage_form, extract_strength, parse_drug_name

logger = get_logger(__name__)

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 200
_ALLOWED_NAME_RE = re.compile(r"^[A-Za-z0-9\s\-()/.,%+]+$")
_CONCEPT_ID_RE = re.compile(r"^\d{1,12}$")


def validate_drug_name(name: object) -> str:
    """Return the trimmed drug name or raise :class:`InvalidInputError`."""

    if not isinstance(name, str):
        raise InvalidInputError("Drug name must be a string.", field="drugName")
    trimmed = name.strip()
    if not trimmed:
        raise InvalidInputError("Drug name is required.", field="drugName")
    if len(trimmed) < MIN_NAME_LENGTH:
        raise InvalidInputError(
            f"Drug name must be at least {MIN_NAME_LENGTH} characters.", field="drugName"
        )
    if len(trimmed) > MAX_NAME_LENGTH:
        raise InvalidInputError(
            f"Drug name must be at most {MAX_NAME_LENGTH} characters.", field="drugName"
        )
    if trimmed.isdigit():
        raise InvalidInputError(
            "Drug name cannot be purely numeric; look up concept identifiers directly.",
            field="drugName",
        )
    if not _ALLOWED_NAME_RE.match(trimmed):
        raise InvalidInputError("Drug name contains invalid characters.", field="drugName")
    return trimmed


def validate_concept_id(concept_id: object) -> str:
    value = str(concept_id).strip() if concept_id is not None else ""
    if not _CONCEPT_ID_RE.match(value):
        raise InvalidInputError("Concept identifier must be numeric.", field="rxcui")
    return value


@dataclass(frozen=True)
class FuzzyConfidenceCurve:
    """Map an approximate-match ``(score, rank)`` pair onto ``[0, 1]``.

    ``clamp(score / score_scale) * rank_decay ** (rank - 1)``: monotonic
    increasing in score, decreasing in rank, deterministic.
    """

    score_scale: float = 100.0
    rank_decay: float = 0.9

    def __call__(self, score: Optional[float], rank: Optional[int]) -> float:
        base = min(max((score or 0.0) / self.score_scale, 0.0), 1.0)
        position = max(rank or 1, 1)
        return base * self.rank_decay ** (position - 1)


StrategyRunner = Callable[[str], Awaitable[list[NormalizationCandidate]]]


@dataclass(frozen=True)
class _StrategyStep:
    strategy: NormalizationStrategy
    run: StrategyRunner
    terminal: bool = False


def _merge(
    current: NormalizationCandidate, other: NormalizationCandidate
) -> NormalizationCandidate:
    """Highest confidence wins; missing optional fields are filled from the loser."""

    winner, loser = (current, other) if current.confidence >= other.confidence else (other, current)
    return winner.model_copy(
        update={
            "dosage_form": winner.dosage_form or loser.dosage_form,
            "strength": winner.strength or loser.strength,
            "term_type": winner.term_type or loser.term_type,
        }
    )


def rank_candidates(candidates: Iterable[NormalizationCandidate]) -> list[NormalizationCandidate]:
    """Deduplicate by concept id and order by confidence, then concept id."""

    merged: dict[str, NormalizationCandidate] = {}
    for candidate in candidates:
        existing = merged.get(candidate.concept_id)
        merged[candidate.concept_id] = (
            candidate if existing is None else _merge(existing, candidate)
        )
    return sorted(merged.values(), key=lambda c: (-c.confidence, c.concept_id))


class DrugNormalizer:
    """Resolve free-text drug names to ranked RxNorm concepts."""

    def __init__(
        self,
        provider: NormalizationProvider,
        key_builder: CacheKeyBuilder,
        settings: NormalizationSettings | None = None,
    ) -> None:
        self._provider = provider
        self._keys = key_builder
        self._settings = settings or NormalizationSettings()
        self._curve = FuzzyConfidenceCurve(
            score_scale=self._settings.fuzzy_score_scale,
            rank_decay=self._settings.fuzzy_rank_decay,
        )
        self._chain: tuple[_StrategyStep, ...] = (
            _StrategyStep(NormalizationStrategy.EXACT, self._exact),
            _StrategyStep(NormalizationStrategy.FUZZY, self._fuzzy),
            _StrategyStep(NormalizationStrategy.SPELLING, self._spelling, terminal=True),
        )

    @property
    def settings(self) -> NormalizationSettings:
        return self._settings

    def fingerprint(self, value: str) -> str:
        return self._keys.fingerprint(value)

    # -- strategies ---------------------------------------------------------

    def _candidate(
        self,
        raw: RawCandidate,
        confidence: float,
        fallback_name: str,
    ) -> NormalizationCandidate:
        return NormalizationCandidate(
            concept_id=raw.concept_id,
            name=raw.name or fallback_name,
            confidence=min(max(confidence, 0.0), 1.0),
            term_type=raw.term_type,
        )

    async def _exact(self, query: str) -> list[NormalizationCandidate]:
        matches = await self._provider.search_exact(query)
        return [self._candidate(raw, 1.0, query) for raw in matches]

    async def _fuzzy(self, query: str) -> list[NormalizationCandidate]:
        matches = await self._provider.search_approximate(query)
        return [self._candidate(raw, self._curve(raw.score, raw.rank), query) for raw in matches]

    async def _spelling(self, query: str) -> list[NormalizationCandidate]:
        suggestions = await self._provider.spelling_suggestions(query)
        candidates: list[NormalizationCandidate] = []
        for index, suggestion in enumerate(suggestions[: self._settings.max_alternatives + 1]):
            confidence = self._settings.spelling_ceiling * self._settings.spelling_decay**index
            for raw in await self._provider.search_exact(suggestion):
                candidates.append(self._candidate(raw, confidence, suggestion))
        return candidates

    # -- public API ---------------------------------------------------------

    async def normalize(self, name: str) -> DrugNormalizationResult:
        """Resolve ``name`` through the fallback chain.

        Raises :class:`InvalidInputError` for malformed names and
        :class:`NoMatchError` when no strategy yields a candidate. When every
        strategy failed on the dependency, the last dependency error is raised
        instead, so an outage is not reported as an unknown drug.
        """

        query = validate_drug_name(name)
        fingerprint = self._keys.fingerprint(query)
        parsed = parse_drug_name(query)
        fallback: tuple[NormalizationStrategy, list[NormalizationCandidate]] | None = None
        tried: list[str] = []
        last_error: DependencyError | DependencyTimeoutError | None = None
        answered = False

        for step in self._chain:
            tried.append(step.strategy.value)
            try:
                candidates = await step.run(query)
            except (DependencyError, DependencyTimeoutError) as exc:
                logger.warning(
                    "normalization_strategy_failed",
                    strategy=step.strategy.value,
                    kind=exc.kind.value,
                    query_fingerprint=fingerprint,
                )
                last_error = exc
                continue
            answered = True
            if not candidates:
                continue

            strategy = step.strategy
            if step.terminal and fallback is not None:
                # An earlier tier keeps its own confidence for a concept both tiers found.
                earlier_strategy, earlier = fallback
                seen = {candidate.concept_id for candidate in earlier}
                fresh = [candidate for candidate in candidates if candidate.concept_id not in seen]
                earlier_top = max(candidate.confidence for candidate in earlier)
                if not fresh or max(c.confidence for c in fresh) <= earlier_top:
                    strategy = earlier_strategy
                candidates = [*earlier, *fresh]

            top = max(candidate.confidence for candidate in candidates)
            if top >= self._settings.min_confidence or step.terminal:
                return self._finalize(fingerprint, parsed, strategy, candidates)
            if fallback is None or top > max(c.confidence for c in fallback[1]):
                fallback = (step.strategy, candidates)
            logger.info(
                "normalization_below_threshold",
                strategy=step.strategy.value,
                top_confidence=round(top, 4),
                query_fingerprint=fingerprint,
            )

        if fallback is not None:
            return self._finalize(fingerprint, parsed, fallback[0], fallback[1])
        if not answered and last_error is not None:
            logger.warning(
                "normalization_dependency_unavailable",
                query_fingerprint=fingerprint,
                strategies=tried,
            )
            raise last_error

        logger.info("normalization_no_match", query_fingerprint=fingerprint, strategies=tried)
        raise NoMatchError(strategies_tried=tried)

    async def normalize_by_known_id(self, concept_id: str) -> DrugNormalizationResult:
        """Resolve a concept identifier directly, bypassing the chain."""

        identifier = validate_concept_id(concept_id)
        raw = await self._provider.get_concept(identifier)
        if raw is None:
            raise NoMatchError(f"Concept '{identifier}' was not found.")
        name = raw.name or identifier
        return self._finalize(
            self._keys.fingerprint(identifier),
            parse_drug_name(name),
            NormalizationStrategy.KNOWN_ID,
            [self._candidate(raw, 1.0, name)],
        )

    async def normalize_batch(self, names: Sequence[str]) -> list[BatchNormalizationItem]:
        """Normalize ``names`` concurrently; output order matches input order."""

        semaphore = asyncio.Semaphore(self._settings.batch_concurrency)

        async def _one(index: int, name: str) -> BatchNormalizationItem:
            async with semaphore:
                try:
                    result = await self.normalize(name)
                except RecommendationError as exc:
                    return BatchNormalizationItem(index=index, error=dict(exc.to_dict()))
                except Exception:
                    logger.exception("batch_normalization_item_failed", index=index)
                    return BatchNormalizationItem(
                        index=index,
                        error={"kind": "internal_error", "detail": "Normalization failed."},
                    )
            return BatchNormalizationItem(index=index, result=result)

        return list(await asyncio.gather(*(_one(i, n) for i, n in enumerate(names))))

    # -- assembly -----------------------------------------------------------

    def _finalize(
        self,
        fingerprint: str,
        parsed: ParsedDrugName,
        strategy: NormalizationStrategy,
        candidates: Sequence[NormalizationCandidate],
    ) -> DrugNormalizationResult:
        enriched = [
            candidate.model_copy(
                update={
                    "dosage_form": extract_dosage_form(candidate.name) or parsed.dosage_form,
                    "strength": extract_strength(candidate.name) or parsed.strength,
                }
            )
            for candidate in candidates
        ]
        ranked = rank_candidates(enriched)
        best, rest = ranked[0], ranked[1:]
        alternatives = tuple(rest[: self._settings.max_alternatives])
        ambiguous = bool(rest) and (
            best.confidence - rest[0].confidence < self._settings.ambiguity_epsilon
        )

        logger.info(
            "drug_normalized",
            strategy=strategy.value,
            concept_id=best.concept_id,
            confidence=round(best.confidence, 4),
            alternatives=len(alternatives),
            ambiguous=ambiguous,
            query_fingerprint=fingerprint,
        )
        return DrugNormalizationResult(
            query_fingerprint=fingerprint,
            best=best,
            alternatives=alternatives,
            strategy_used=strategy,
            ambiguous=ambiguous,
        )


__all__ = [
    "DrugNormalizer",
    "FuzzyConfidenceCurve",
    "MAX_NAME_LENGTH",
    "MIN_NAME_LENGTH",
    "rank_candidates",
    "validate_concept_id",
    "validate_drug_name",
]
