"""Best-effort parsing of drug names and dosage forms.

Nothing here raises on odd input: unparseable values come back as ``None``
(or the ``other`` family) and callers decide how to proceed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

__all__ = [
    "DOSAGE_FORMS",
    "DosageFamily",
    "ParsedDrugName",
    "dosage_form_family",
    "extract_dosage_form",
    "extract_strength",
    "forms_compatible",
    "normalize_drug_name",
    "parse_drug_name",
]

DOSAGE_FORMS: tuple[str, ...] = (
    "TABLET",
    "CAPSULE",
    "CAPLET",
    "SOLUTION",
    "SUSPENSION",
    "SYRUP",
    "INJECTION",
    "CREAM",
    "OINTMENT",
    "GEL",
    "LOTION",
    "PATCH",
    "SPRAY",
    "INHALER",
    "SUPPOSITORY",
    "POWDER",
)

# Ratio strengths first so "2.5 MG/ML" is not truncated to "2.5 MG".
_STRENGTH_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\d+(?:\.\d+)?\s*(?:MG|MCG|G)\s*/\s*\d*(?:\.\d+)?\s*(?:ML|L)\b", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*(?:MG|MCG|G|ML|L)\b|\d+(?:\.\d+)?\s*%", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*UNITS?\b", re.IGNORECASE),
)

_NON_ALNUM_RE = re.compile(r"[^A-Z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_SEPARATORS_RE = re.compile(r"[,\-\s]+")


class DosageFamily(str, Enum):
    SOLID = "solid"
    LIQUID = "liquid"
    OTHER = "other"


# Ordered: the first keyword contained in a form decides its family, so
# "POWDER, FOR SUSPENSION" is solid.
_FAMILY_KEYWORDS: tuple[tuple[str, DosageFamily], ...] = (
    ("tablet", DosageFamily.SOLID),
    ("capsule", DosageFamily.SOLID),
    ("caplet", DosageFamily.SOLID),
    ("chewable", DosageFamily.SOLID),
    ("lozenge", DosageFamily.SOLID),
    ("pill", DosageFamily.SOLID),
    ("granule", DosageFamily.SOLID),
    ("powder", DosageFamily.SOLID),
    ("solution", DosageFamily.LIQUID),
    ("suspension", DosageFamily.LIQUID),
    ("syrup", DosageFamily.LIQUID),
    ("elixir", DosageFamily.LIQUID),
    ("emulsion", DosageFamily.LIQUID),
    ("drops", DosageFamily.LIQUID),
    ("liquid", DosageFamily.LIQUID),
)


@dataclass(frozen=True)
class ParsedDrugName:
    base_name: str
    strength: Optional[str] = None
    dosage_form: Optional[str] = None


def normalize_drug_name(name: str) -> str:
    """Upper-case ``name`` and strip punctuation for loose comparisons."""

    cleaned = _NON_ALNUM_RE.sub("", name.upper().strip())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def extract_dosage_form(drug_name: Optional[str]) -> Optional[str]:
    if not drug_name:
        return None
    upper = drug_name.upper()
    for form in DOSAGE_FORMS:
        if form in upper:
            return form
    return None


def extract_strength(drug_name: Optional[str]) -> Optional[str]:
    if not drug_name:
        return None
    for pattern in _STRENGTH_PATTERNS:
        match = pattern.search(drug_name)
        if match:
            return _WHITESPACE_RE.sub(" ", match.group(0).strip()).upper()
    return None


def parse_drug_name(drug_name: str) -> ParsedDrugName:
    """Split ``drug_name`` into base name, strength and dosage form."""

    strength = extract_strength(drug_name)
    dosage_form = extract_dosage_form(drug_name)
    base = drug_name
    if strength:
        base = re.sub(re.escape(strength), "", base, count=1, flags=re.IGNORECASE)
    if dosage_form:
        base = re.sub(re.escape(dosage_form), "", base, flags=re.IGNORECASE)
    base = _SEPARATORS_RE.sub(" ", base).strip()
    return ParsedDrugName(base_name=base, strength=strength, dosage_form=dosage_form)


def dosage_form_family(form: Optional[str]) -> DosageFamily:
    if not form:
        return DosageFamily.OTHER
    lowered = form.lower()
    for keyword, family in _FAMILY_KEYWORDS:
        if keyword in lowered:
            return family
    return DosageFamily.OTHER


def forms_compatible(first: Optional[str], second: Optional[str]) -> bool:
    return dosage_form_family(first) is dosage_form_family(second)
