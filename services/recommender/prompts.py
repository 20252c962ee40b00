"""Prompt text and PHI-safe payload construction for AI package reasoning."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .models import NormalizationCandidate, Package, PackageSelection, ReasoningRequest

# Only these keys ever leave the process towards the reasoning model.
AI_ALLOWED_FIELDS: frozenset[str] = frozenset(
    {
        "drug",
        "rxcui",
        "name",
        "genericName",
        "brandName",
        "dosageForm",
        "strength",
        "requiredQuantity",
        "packages",
        "ndc",
        "packageSize",
        "unit",
        "labeler",
        "isActive",
        "algorithmicChoice",
        "tier",
        "overfillPercentage",
        "underfillPercentage",
    }
)

PHI_FIELD_HINTS: tuple[str, ...] = (
    "patient",
    "prescriber",
    "physician",
    "doctor",
    "firstname",
    "lastname",
    "dob",
    "dateofbirth",
    "ssn",
    "mrn",
    "medicalrecordnumber",
    "address",
    "phone",
    "email",
)

# Literal braces are doubled: this text is rendered by ChatPromptTemplate.
SYSTEM_PROMPT = """You are an expert pharmacy assistant specializing in NDC (National Drug Code) package selection.
Given a drug, the quantity to dispense and the active packages on the market, recommend the single package that best fills the prescription.

Principles:
- Only recommend an NDC from the supplied package list.
- Minimize medication waste while ensuring adequate supply.
- Prefer a single container and standard pharmacy practice.
- An algorithmic choice is supplied; keep it unless another package is clearly better.

Respond with a JSON object only, using exactly this structure:
{{
  "primaryRecommendation": {{
    "ndc": "string (NDC from the package list)",
    "packageSize": number,
    "unit": "string",
    "quantityToDispense": number,
    "reasoning": "string",
    "confidenceScore": number between 0 and 1
  }},
  "alternatives": [],
  "reasoning": {{
    "factors": ["string"],
    "considerations": ["string"],
    "rationale": "string"
  }},
  "costEfficiency": {{
    "estimatedWaste": number between 0 and 100,
    "rating": "low" | "medium" | "high"
  }}
}}"""

HUMAN_PROMPT = "Recommend a package for this request:\n{request_json}"


def _allowed(key: str) -> bool:
    return key in AI_ALLOWED_FIELDS


def sanitize_for_ai(data: Any) -> Any:
    """Return ``data`` restricted to :data:`AI_ALLOWED_FIELDS` at every level."""

    if isinstance(data, Mapping):
        return {
            key: sanitize_for_ai(value) for key, value in data.items() if _allowed(str(key))
        }
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes, bytearray)):
        return [sanitize_for_ai(item) for item in data]
    return data


def detect_phi_fields(data: Any, path: str = "") -> list[str]:
    """Return dotted paths of keys whose names suggest PHI."""

    findings: list[str] = []
    if isinstance(data, Mapping):
        for key, value in data.items():
            full_path = f"{path}.{key}" if path else str(key)
            normalized = str(key).lower().replace("_", "").replace("-", "")
            if any(hint in normalized for hint in PHI_FIELD_HINTS):
                findings.append(full_path)
            findings.extend(detect_phi_fields(value, full_path))
    elif isinstance(data, Sequence) and not isinstance(data, (str, bytes, bytearray)):
        for index, item in enumerate(data):
            findings.extend(detect_phi_fields(item, f"{path}[{index}]"))
    return findings


def _package_summary(package: Package) -> dict[str, Any]:
    return {
        "ndc": package.ndc,
        "packageSize": package.package_size.quantity,
        "unit": package.package_size.unit,
        "dosageForm": package.dosage_form,
        "labeler": package.labeler,
        "isActive": package.is_active,
    }


def build_reasoning_request(
    drug: NormalizationCandidate,
    packages: Sequence[Package],
    required_quantity: float,
    selection: PackageSelection,
) -> ReasoningRequest:
    """Assemble the sanitized request sent to the reasoning dependency."""

    drug_payload = sanitize_for_ai(
        {
            "rxcui": drug.concept_id,
            "name": drug.name,
            "dosageForm": drug.dosage_form,
            "strength": drug.strength,
        }
    )
    choice = sanitize_for_ai(
        {
            "ndc": selection.selected.ndc,
            "tier": selection.tier.value,
            "overfillPercentage": selection.overfill_percentage,
            "underfillPercentage": selection.underfill_percentage,
        }
    )
    return ReasoningRequest(
        drug=drug_payload,
        required_quantity=required_quantity,
        packages=tuple(
            sanitize_for_ai(_package_summary(package))
            for package in packages
            if package.is_active
        ),
        algorithmic_choice=choice,
    )


__all__ = [
    "AI_ALLOWED_FIELDS",
    "HUMAN_PROMPT",
    "PHI_FIELD_HINTS",
    "SYSTEM_PROMPT",
    "build_reasoning_request",
    "detect_phi_fields",
    "sanitize_for_ai",
]
