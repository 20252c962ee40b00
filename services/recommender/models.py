"""Domain models for drug normalization and package recommendation."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import Field

from shared.models import CamelModel, FrozenCamelModel


class NormalizationStrategy(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    SPELLING = "spelling"
    KNOWN_ID = "known_id"


class MarketingStatus(str, Enum):
    ACTIVE = "active"
    DISCONTINUED = "discontinued"
    UNKNOWN = "unknown"


class Precision(str, Enum):
    EXACT = "exact"
    OVERFILL = "overfill"
    UNDERFILL = "underfill"


class SelectionTier(str, Enum):
    EXACT = "exact"
    ADEQUATE = "adequate"
    INSUFFICIENT = "insufficient"


class FillAdvisory(str, Enum):
    """Structured counterpart of the human-readable selection warnings."""

    LEFTOVER_MEDICATION = "leftover_medication"
    EARLY_REFILL = "early_refill"


class RecommendationSource(str, Enum):
    AI = "ai"
    ALGORITHM = "algorithm"


class BreakerStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class NormalizationCandidate(FrozenCamelModel):
    """A concept the normalizer believes the query refers to."""

    concept_id: str = Field(description="RxNorm concept identifier (RxCUI)")
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    dosage_form: Optional[str] = None
    strength: Optional[str] = None
    term_type: Optional[str] = Field(default=None, description="RxNorm term type (TTY)")


class DrugNormalizationResult(FrozenCamelModel):
    """Ranked normalization outcome for a single query."""

    query_fingerprint: str = Field(
        description="Keyed digest of the query for log and support correlation"
    )
    best: NormalizationCandidate
    alternatives: tuple[NormalizationCandidate, ...] = ()
    strategy_used: NormalizationStrategy
    ambiguous: bool = False


class BatchNormalizationItem(CamelModel):
    """Per-name outcome of a batch normalization; exactly one field is set."""

    index: int
    result: Optional[DrugNormalizationResult] = None
    error: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


# ---------------------------------------------------------------------------
# Packages and selection
# ---------------------------------------------------------------------------


class PackageSize(FrozenCamelModel):
    quantity: float = Field(gt=0)
    unit: str
    description: Optional[str] = None


class Package(FrozenCamelModel):
    """A marketed package as listed in the NDC directory."""

    ndc: str
    package_size: PackageSize
    dosage_form: Optional[str] = None
    is_active: bool = True
    marketing_status: MarketingStatus = MarketingStatus.UNKNOWN
    labeler: Optional[str] = None
    product_ndc: Optional[str] = None
    brand_name: Optional[str] = None
    generic_name: Optional[str] = None


class FillPrecision(FrozenCamelModel):
    overfill_percentage: float = 0.0
    underfill_percentage: float = 0.0
    precision: Precision


class PackageSelection(FrozenCamelModel):
    """Result of the deterministic package selection algorithm."""

    selected: Package
    overfill_percentage: float = 0.0
    underfill_percentage: float = 0.0
    precision: Precision
    tier: SelectionTier
    warnings: tuple[str, ...] = ()
    advisories: tuple[FillAdvisory, ...] = ()
    explanation: str = ""


# ---------------------------------------------------------------------------
# AI enhancement
# ---------------------------------------------------------------------------


class ReasoningRequest(FrozenCamelModel):
    """PHI-free payload handed to the reasoning dependency."""

    drug: dict[str, Any]
    required_quantity: float
    packages: tuple[dict[str, Any], ...]
    algorithmic_choice: dict[str, Any]


class ReasoningResponse(CamelModel):
    """Raw structured reply from the reasoning dependency."""

    payload: dict[str, Any]
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: Optional[str] = None


class AIRecommendationResult(FrozenCamelModel):
    source: RecommendationSource
    selection: PackageSelection
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    fallback_reason: Optional[str] = None


class AIUsageSnapshot(FrozenCamelModel):
    calls: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    short_circuits: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost_usd: float = 0.0


class CircuitBreakerState(FrozenCamelModel):
    status: BreakerStatus = BreakerStatus.CLOSED
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None
    last_probe_time: Optional[float] = None


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class RecommendationOptions(FrozenCamelModel):
    use_ai: bool = True
    skip_cache: bool = False


class RecommendationMetadata(FrozenCamelModel):
    execution_time_ms: float
    used_ai: bool = False
    ai_attempted: bool = False
    algorithmic_fallback: bool = True
    normalization_cached: bool = False
    packages_cached: bool = False


class RecommendationResult(FrozenCamelModel):
    drug: NormalizationCandidate
    normalization: DrugNormalizationResult
    recommendation: AIRecommendationResult
    packages_considered: int
    warnings: tuple[str, ...] = ()
    explanation: str = ""
    metadata: RecommendationMetadata


__all__ = [
    "AIRecommendationResult",
    "AIUsageSnapshot",
    "BatchNormalizationItem",
    "BreakerStatus",
    "CircuitBreakerState",
    "DrugNormalizationResult",
    "FillAdvisory",
    "FillPrecision",
    "MarketingStatus",
    "NormalizationCandidate",
    "NormalizationStrategy",
    "Package",
    "PackageSelection",
    "PackageSize",
    "Precision",
    "ReasoningRequest",
    "ReasoningResponse",
    "RecommendationMetadata",
    "RecommendationOptions",
    "RecommendationResult",
    "RecommendationSource",
    "SelectionTier",
]
