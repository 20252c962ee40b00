"""TTL cache layer wrapping normalization and package lookups.

The layer never fails a request because of the store: read and write errors
are logged and the computation runs uncached.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from shared.observability.logger import get_logger

from .errors import CacheUnavailableError
from .keys import SafeCacheKey

T = TypeVar("T")

logger = get_logger(__name__)


class CacheStore(Protocol):
    """Async key/value store with per-entry TTL."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class InMemoryCacheStore:
    """Process-local LRU store with lazy expiry."""

    def __init__(
        self,
        *,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                # Expired entries read as absent and are dropped on touch.
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(key, value, self._clock() + ttl_seconds)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    errors: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass(frozen=True)
class CacheLookup:
    """Value returned by :meth:`CacheLayer.get_or_compute` plus hit flag."""

    value: Any
    cached: bool


class CacheLayer:
    """Memoize async computations behind :class:`SafeCacheKey` keys."""

    def __init__(self, store: CacheStore, *, default_ttl_seconds: float = 3600.0) -> None:
        self._store = store
        self._default_ttl = default_ttl_seconds
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @staticmethod
    def _require_safe_key(key: object) -> SafeCacheKey:
        if not isinstance(key, SafeCacheKey):
            raise TypeError(
                "Cache keys must be SafeCacheKey instances built by CacheKeyBuilder, "
                f"got {type(key).__name__}."
            )
        return key

    async def get_or_compute(
        self,
        key: SafeCacheKey,
        compute: Callable[[], Awaitable[T]],
        *,
        ttl_seconds: float | None = None,
        skip_cache: bool = False,
    ) -> CacheLookup:
        """Return the cached value for ``key`` or compute and store it.

        ``skip_cache`` forces a recompute but still refreshes the entry.
        Errors raised by ``compute`` propagate and nothing is stored.
        """

        safe_key = self._require_safe_key(key)
        raw_key = str(safe_key)

        if not skip_cache:
            try:
                cached = await self._store.get(raw_key)
            except Exception as exc:
                self._record_error("cache_read_failed", safe_key, exc)
            else:
                if cached is not None:
                    self._hits += 1
                    return CacheLookup(cached, True)
        self._misses += 1

        value = await compute()
        try:
            ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
            await self._store.set(raw_key, value, ttl)
        except Exception as exc:
            self._record_error("cache_write_failed", safe_key, exc)
        return CacheLookup(value, False)

    async def invalidate(self, key: SafeCacheKey) -> None:
        safe_key = self._require_safe_key(key)
        await self._store.delete(str(safe_key))
        logger.info("cache_invalidated", namespace=safe_key.namespace)

    async def invalidate_by_prefix(self, namespace: str) -> int:
        """Drop every entry stored under ``namespace``; returns the count."""

        removed = await self._store.delete_prefix(f"{namespace}:")
        logger.info("cache_namespace_invalidated", namespace=namespace, removed=removed)
        return removed

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, errors=self._errors)

    def _record_error(self, event: str, key: SafeCacheKey, exc: Exception) -> None:
        self._errors += 1
        degraded = (
            exc if isinstance(exc, CacheUnavailableError) else CacheUnavailableError(str(exc))
        )
        logger.warning(
            event,
            namespace=key.namespace,
            kind=degraded.kind.value,
            error_type=type(exc).__name__,
        )


__all__ = [
    "CacheEntry",
    "CacheLayer",
    "CacheLookup",
    "CacheStats",
    "CacheStore",
    "InMemoryCacheStore",
]
