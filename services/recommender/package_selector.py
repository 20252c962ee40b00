"""Deterministic single-package selection and fill-precision math."""

from __future__ import annotations

import math
from typing import Sequence

from .errors import InvalidInputError, NoPackagesError
from .models import (
    FillAdvisory,
    FillPrecision,
    Package,
    PackageSelection,
    Precision,
    SelectionTier,
)

OVERFILL_WARNING_THRESHOLD = 20.0


def _pct(delta: float, required: float) -> float:
    # Round up to one decimal: a real difference never reports 0.0 and an
    # overfill just past the threshold never reports the threshold itself.
    tenths = round(delta / required * 1000.0, 6)
    return math.ceil(tenths) / 10.0


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def validate_quantity(required_quantity: float) -> float:
    try:
        quantity = float(required_quantity)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError("Required quantity must be a number.", field="quantity") from exc
    if not math.isfinite(quantity) or quantity <= 0:
        raise InvalidInputError("Required quantity must be a positive number.", field="quantity")
    return quantity


def fill_precision(package_qty: float, required_qty: float) -> FillPrecision:
    """Return how closely ``package_qty`` fills ``required_qty``."""

    required = validate_quantity(required_qty)
    package = float(package_qty)
    if package == required:
        return FillPrecision(precision=Precision.EXACT)
    if package > required:
        return FillPrecision(
            overfill_percentage=_pct(package - required, required),
            precision=Precision.OVERFILL,
        )
    return FillPrecision(
        underfill_percentage=_pct(required - package, required),
        precision=Precision.UNDERFILL,
    )


def fill_advisories(
    precision: FillPrecision, package: Package, required: float
) -> tuple[tuple[str, ...], tuple[FillAdvisory, ...]]:
    """Return the warning texts and advisories that ``precision`` implies."""

    unit = package.package_size.unit
    quantity = package.package_size.quantity
    if precision.precision is Precision.OVERFILL:
        if precision.overfill_percentage <= OVERFILL_WARNING_THRESHOLD:
            return (), ()
        warning = (
            f"Significant overfill: {precision.overfill_percentage:.1f}% "
            f"({_fmt(quantity - required)} extra {unit}). Patient will have leftover "
            "medication. Consider discussing with prescriber."
        )
        return (warning,), (FillAdvisory.LEFTOVER_MEDICATION,)
    if precision.precision is Precision.UNDERFILL:
        warning = (
            f"No package meets required quantity. Largest available is {_fmt(quantity)} "
            f"{unit}. Underfill: {precision.underfill_percentage:.1f}% "
            f"({_fmt(required - quantity)} {unit} short). Patient will need early refill."
        )
        return (warning,), (FillAdvisory.EARLY_REFILL,)
    return (), ()


def build_selection(
    package: Package,
    required_quantity: float,
    tier: SelectionTier,
    explanation: str,
) -> PackageSelection:
    required = validate_quantity(required_quantity)
    precision = fill_precision(package.package_size.quantity, required)
    warnings, advisories = fill_advisories(precision, package, required)
    return PackageSelection(
        selected=package,
        overfill_percentage=precision.overfill_percentage,
        underfill_percentage=precision.underfill_percentage,
        precision=precision.precision,
        tier=tier,
        warnings=warnings,
        advisories=advisories,
        explanation=explanation,
    )


def choose_package(packages: Sequence[Package], required_quantity: float) -> PackageSelection:
    """Pick the single best package for ``required_quantity``.

    Tiers, first match wins: an exact size; the smallest package at least as
    large as required; otherwise the largest package. Ties go to the lowest
    NDC. Inactive packages are never returned.
    """

    required = validate_quantity(required_quantity)
    active = [package for package in packages if package.is_active]
    if not active:
        raise NoPackagesError(
            "No packages available for selection."
            if not packages
            else "All available packages are inactive."
        )

    ordered = sorted(active, key=lambda p: (p.package_size.quantity, p.ndc))

    for package in ordered:
        if package.package_size.quantity == required:
            return build_selection(
                package,
                required,
                SelectionTier.EXACT,
                f"Exact match: {_fmt(package.package_size.quantity)} "
                f"{package.package_size.unit} package meets requirement perfectly",
            )

    for package in ordered:
        if package.package_size.quantity > required:
            return build_selection(
                package,
                required,
                SelectionTier.ADEQUATE,
                f"Selected {_fmt(package.package_size.quantity)} {package.package_size.unit} "
                f"package (smallest available that meets {_fmt(required)} "
                f"{package.package_size.unit} requirement)",
            )

    top_quantity = ordered[-1].package_size.quantity
    largest = next(p for p in ordered if p.package_size.quantity == top_quantity)
    return build_selection(
        largest,
        required,
        SelectionTier.INSUFFICIENT,
        f"Selected largest available package: {_fmt(largest.package_size.quantity)} "
        f"{largest.package_size.unit} (underfills requirement of {_fmt(required)} "
        f"{largest.package_size.unit})",
    )


__all__ = [
    "OVERFILL_WARNING_THRESHOLD",
    "build_selection",
    "choose_package",
    "fill_advisories",
    "fill_precision",
    "validate_quantity",
]
