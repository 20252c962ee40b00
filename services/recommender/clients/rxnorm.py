"""RxNav REST client implementing :class:`NormalizationProvider`."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from ..config import RxNormSettings
from ..interfaces import RawCandidate
from ..resilience import RetryPolicy
from .base import JsonApiClient

# Exact lookups can return several ids; only the first few get a name lookup.
MAX_EXACT_IDS = 5


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RxNormClient(JsonApiClient):
    """Query RxNav for exact, approximate and spelling matches."""

    dependency = "rxnorm"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        max_approximate_entries: int = 10,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(http_client, retry_policy=retry_policy)
        self._max_entries = max_approximate_entries

    @classmethod
    def from_settings(cls, settings: RxNormSettings) -> "RxNormClient":
        http_client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={"Accept": "application/json"},
        )
        return cls(
            http_client,
            max_approximate_entries=settings.max_approximate_entries,
            retry_policy=RetryPolicy(attempts=settings.retry_attempts),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def search_exact(self, name: str) -> list[RawCandidate]:
        payload = await self.get_json("/rxcui.json", {"name": name, "search": 2})
        ids = _as_list(((payload or {}).get("idGroup") or {}).get("rxnormId"))
        concepts = await asyncio.gather(
            *(self.get_concept(str(concept_id)) for concept_id in ids[:MAX_EXACT_IDS])
        )
        return [
            concept or RawCandidate(concept_id=str(concept_id))
            for concept_id, concept in zip(ids, concepts)
        ]

    async def search_approximate(self, name: str) -> list[RawCandidate]:
        payload = await self.get_json(
            "/approximateTerm.json",
            {"term": name, "maxEntries": self._max_entries, "option": 1},
        )
        raw = _as_list(((payload or {}).get("approximateGroup") or {}).get("candidate"))
        best: dict[str, RawCandidate] = {}
        for entry in raw:
            concept_id = entry.get("rxcui")
            if not concept_id:
                continue
            candidate = RawCandidate(
                concept_id=str(concept_id),
                name=entry.get("name") or None,
                score=_to_float(entry.get("score")),
                rank=_to_int(entry.get("rank")),
            )
            # The same concept appears once per source atom; keep its best rank.
            current = best.get(candidate.concept_id)
            if current is None or (candidate.rank or 10**6) < (current.rank or 10**6):
                best[candidate.concept_id] = candidate
        return list(best.values())

    async def spelling_suggestions(self, name: str) -> list[str]:
        payload = await self.get_json("/spellingsuggestions.json", {"name": name})
        group = (payload or {}).get("suggestionGroup") or {}
        suggestions = (group.get("suggestionList") or {}).get("suggestion")
        return [str(item) for item in _as_list(suggestions) if item]

    async def get_concept(self, concept_id: str) -> Optional[RawCandidate]:
        payload = await self.get_json(
            f"/rxcui/{concept_id}/properties.json", not_found_ok=True
        )
        properties = (payload or {}).get("properties")
        if not properties:
            return None
        return RawCandidate(
            concept_id=str(properties.get("rxcui") or concept_id),
            name=properties.get("name") or None,
            term_type=properties.get("tty") or None,
        )


__all__ = ["MAX_EXACT_IDS", "RxNormClient"]
