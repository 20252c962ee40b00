"""NDC package recommendation: normalization, selection and AI review."""

from .errors import (
    CacheUnavailableError,
    CircuitOpenError,
    DependencyError,
    DependencyTimeoutError,
    ErrorKind,
    InvalidInputError,
    NoMatchError,
    NoPackagesError,
    RecommendationError,
)
from .models import (
    DrugNormalizationResult,
    Package,
    PackageSelection,
    RecommendationOptions,
    RecommendationResult,
)
from .normalizer import DrugNormalizer
from .orchestrator import RecommendationOrchestrator, build_orchestrator
from .package_selector import choose_package, fill_precision

__all__ = [
    "CacheUnavailableError",
    "CircuitOpenError",
    "DependencyError",
    "DependencyTimeoutError",
    "DrugNormalizationResult",
    "DrugNormalizer",
    "ErrorKind",
    "InvalidInputError",
    "NoMatchError",
    "NoPackagesError",
    "Package",
    "PackageSelection",
    "RecommendationError",
    "RecommendationOptions",
    "RecommendationOrchestrator",
    "RecommendationResult",
    "build_orchestrator",
    "choose_package",
    "fill_precision",
]
