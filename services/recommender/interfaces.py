"""Protocols for the external collaborators the recommender depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from .models import Package, ReasoningRequest, ReasoningResponse


@dataclass(frozen=True)
class RawCandidate:
    """Concept match as reported by a normalization provider.

    ``score`` and ``rank`` are only populated by approximate searches.
    """

    concept_id: str
    name: Optional[str] = None
    score: Optional[float] = None
    rank: Optional[int] = None
    term_type: Optional[str] = None


class NormalizationProvider(Protocol):
    async def search_exact(self, name: str) -> Sequence[RawCandidate]: ...

    async def search_approximate(self, name: str) -> Sequence[RawCandidate]: ...

    async def spelling_suggestions(self, name: str) -> Sequence[str]: ...

    async def get_concept(self, concept_id: str) -> Optional[RawCandidate]: ...


class PackageDirectory(Protocol):
    async def get_packages(self, concept_id: str) -> Sequence[Package]:
        """Return every listed package for ``concept_id``, inactive ones included."""
        ...


class ReasoningClient(Protocol):
    async def recommend(self, request: ReasoningRequest) -> ReasoningResponse: ...


__all__ = [
    "NormalizationProvider",
    "PackageDirectory",
    "RawCandidate",
    "ReasoningClient",
]
