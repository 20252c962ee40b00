"""Helpers that keep protected health information out of log output."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, MutableMapping

__all__ = [
    "PHI_FIELD_NAMES",
    "PHI_PATTERNS",
    "REDACTED",
    "redact_event",
    "redact_text",
    "scrub_for_logging",
]

REDACTED = "[REDACTED]"

PHI_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Social security numbers.
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    # US phone numbers.
    re.compile(r"\b(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    re.compile(r"\bMRN[:#\s]*\w+", re.IGNORECASE),
    re.compile(r"\b(?:DOB|date of birth)[:\s]*[\d/.-]+", re.IGNORECASE),
)

PHI_FIELD_NAMES: frozenset[str] = frozenset(
    {
        "patient_name",
        "patientname",
        "first_name",
        "firstname",
        "last_name",
        "lastname",
        "full_name",
        "fullname",
        "ssn",
        "social_security_number",
        "mrn",
        "medical_record_number",
        "dob",
        "date_of_birth",
        "dateofbirth",
        "address",
        "phone",
        "phone_number",
        "email",
        "patient_id",
        "patientid",
        "insurance_id",
    }
)

# structlog bookkeeping keys that never carry user data.
_PASSTHROUGH_KEYS = frozenset({"event", "level", "timestamp", "logger", "service"})


def _normalize_key(key: Any) -> str:
    return str(key).strip().lower().replace("-", "_")


def redact_text(value: str) -> str:
    """Return ``value`` with every PHI-looking substring replaced."""

    redacted = value
    for pattern in PHI_PATTERNS:
        redacted = pattern.sub(REDACTED, redacted)
    return redacted


def scrub_for_logging(
    payload: Any,
    *,
    allow_keys: Iterable[str] | None = None,
    max_depth: int = 4,
) -> Any:
    """Return a copy of ``payload`` with PHI fields and patterns redacted.

    Mapping keys listed in :data:`PHI_FIELD_NAMES` have their values replaced
    wholesale. Remaining strings are run through :func:`redact_text`. Nested
    mappings and sequences are traversed up to ``max_depth`` levels.
    """

    allowed = {_normalize_key(key) for key in allow_keys or ()}

    def _scrub(value: Any, depth: int) -> Any:
        if depth <= 0:
            return "[scrubbed]"
        if isinstance(value, Mapping):
            sanitized: dict[str, Any] = {}
            for key, item in value.items():
                normalized = _normalize_key(key)
                if normalized in allowed:
                    sanitized[str(key)] = item
                elif normalized in PHI_FIELD_NAMES:
                    sanitized[str(key)] = REDACTED
                else:
                    sanitized[str(key)] = _scrub(item, depth - 1)
            return sanitized
        if isinstance(value, str):
            return redact_text(value)
        if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
            scrubbed = [_scrub(item, depth - 1) for item in value]
            return tuple(scrubbed) if isinstance(value, tuple) else scrubbed
        return value

    return _scrub(payload, max_depth)


def redact_event(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor scrubbing PHI from every bound field."""

    for key in list(event_dict.keys()):
        if key in _PASSTHROUGH_KEYS:
            continue
        value = event_dict[key]
        if _normalize_key(key) in PHI_FIELD_NAMES:
            event_dict[key] = REDACTED
        elif isinstance(value, (str, Mapping)) or (
            isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray))
        ):
            event_dict[key] = scrub_for_logging(value)
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = redact_text(event)
    return event_dict
