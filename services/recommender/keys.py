"""PHI-safe cache key derivation.

Keys are ``"<namespace>:<hmac-sha256 hex>"``. Request parts are normalized and
hashed with a server-side secret so a key can be neither reversed nor
recomputed by someone holding only a drug name.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Any

_NAMESPACE_RE = re.compile(r"^[a-z][a-z0-9_.-]*$")
_WHITESPACE_RE = re.compile(r"\s+")
_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")
_PART_SEPARATOR = "\x1f"
_NONE_MARKER = "\x00"
_FINGERPRINT_LENGTH = 12


@dataclass(frozen=True)
class SafeCacheKey:
    """Opaque cache key; only :class:`CacheKeyBuilder` should create these."""

    namespace: str
    digest: str

    def __post_init__(self) -> None:
        if not _NAMESPACE_RE.match(self.namespace):
            raise ValueError(f"Invalid cache namespace '{self.namespace}'.")
        if not _DIGEST_RE.match(self.digest):
            # Never echo the value: a malformed digest may be a raw request part.
            raise ValueError("Cache key digest must be a SHA-256 hex digest.")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.digest}"


def _normalize_part(part: Any) -> str:
    if part is None:
        return _NONE_MARKER
    if isinstance(part, str):
        return _WHITESPACE_RE.sub(" ", part.strip().lower())
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, float) and part.is_integer():
        part = int(part)
    return str(part)


class CacheKeyBuilder:
    """Build deterministic, non-reversible cache keys from request parts."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Cache key secret must not be empty.")
        self._secret = secret.encode("utf-8")

    def _digest(self, message: str) -> str:
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def build(self, namespace: str, *parts: Any) -> SafeCacheKey:
        """Return the key for ``parts`` under ``namespace``.

        ``"Lisinopril 10 MG"`` and ``"  lisinopril   10 mg "`` produce the same
        key; ``10`` and ``10.0`` do as well.
        """

        if not _NAMESPACE_RE.match(namespace):
            raise ValueError(f"Invalid cache namespace '{namespace}'.")
        if not parts:
            raise ValueError("At least one key part is required.")
        message = _PART_SEPARATOR.join(_normalize_part(part) for part in parts)
        return SafeCacheKey(namespace=namespace, digest=self._digest(f"{namespace}|{message}"))

    def fingerprint(self, value: Any) -> str:
        """Return a short keyed digest of ``value`` for log correlation."""

        return self._digest(f"fingerprint|{_normalize_part(value)}")[:_FINGERPRINT_LENGTH]


__all__ = ["CacheKeyBuilder", "SafeCacheKey"]
