"""openFDA NDC directory client implementing :class:`PackageDirectory`."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

import httpx

from shared.observability.logger import get_logger

from ..config import OpenFDASettings
from ..models import MarketingStatus, Package, PackageSize
from ..resilience import RetryPolicy
from .base import JsonApiClient

logger = get_logger(__name__)

_COUNT_IN_CONTAINER_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+([A-Z]+)\s+IN\s+\d+", re.IGNORECASE)
_COUNT_ONLY_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+([A-Z]+)$", re.IGNORECASE)
_FIRST_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_LAST_WORD_RE = re.compile(r"\b([A-Z]+)\b(?!.*\b[A-Z]+\b)", re.IGNORECASE)
_NDC_SEGMENT_WIDTHS = (5, 4, 2)

UNIT_ALIASES: dict[str, str] = {
    "TABLETS": "TABLET",
    "CAPSULES": "CAPSULE",
    "MILLILITER": "ML",
    "MILLILITERS": "ML",
    "LITER": "L",
    "LITERS": "L",
    "GRAM": "GM",
    "GRAMS": "GM",
    "G": "GM",
    "MILLIGRAM": "MG",
    "MILLIGRAMS": "MG",
    "MICROGRAM": "MCG",
    "MICROGRAMS": "MCG",
    "UNITS": "UNIT",
    "KITS": "KIT",
    "PATCHES": "PATCH",
    "VIALS": "VIAL",
    "BOTTLES": "BOTTLE",
    "BLISTERS": "BLISTER",
    "SYRINGES": "SYRINGE",
    "INHALERS": "INHALER",
    "SUPPOSITORIES": "SUPPOSITORY",
}


def normalize_unit(unit: str) -> str:
    normalized = unit.strip().upper()
    return UNIT_ALIASES.get(normalized, normalized)


def normalize_ndc(ndc: str) -> str:
    """Return ``ndc`` as 11 digits in 5-4-2 form, e.g. ``00071-0156-23``.

    Hyphenated 4-4-2, 5-3-2 and 5-4-1 codes are padded segment by segment;
    bare digit strings are left-padded as a whole.
    """

    segments = ["".join(ch for ch in part if ch.isdigit()) for part in ndc.strip().split("-")]
    if len(segments) == 3 and all(
        0 < len(segment) <= width for segment, width in zip(segments, _NDC_SEGMENT_WIDTHS)
    ):
        return "-".join(
            segment.rjust(width, "0") for segment, width in zip(segments, _NDC_SEGMENT_WIDTHS)
        )
    digits = "".join(segments).rjust(11, "0")
    return f"{digits[:5]}-{digits[5:9]}-{digits[9:11]}"


def parse_package_size(description: Optional[str]) -> Optional[PackageSize]:
    """Parse an openFDA packaging description into quantity and unit.

    ``"100 TABLET in 1 BOTTLE"`` and ``"30 mL in 1 BOTTLE"`` use the leading
    count; ``"1 KIT"`` is a bare count; anything else falls back to the first
    number and the last word. Returns ``None`` when no quantity is found.
    """

    if not description:
        return None
    text = description.strip()
    match = _COUNT_IN_CONTAINER_RE.match(text) or _COUNT_ONLY_RE.match(text)
    if match:
        quantity, unit = float(match.group(1)), match.group(2)
    else:
        number = _FIRST_NUMBER_RE.search(text)
        word = _LAST_WORD_RE.search(text)
        if not number or not word:
            return None
        quantity, unit = float(number.group(1)), word.group(1)
    if quantity <= 0:
        return None
    return PackageSize(quantity=quantity, unit=normalize_unit(unit), description=description)


def marketing_status(packaging: Mapping[str, Any]) -> MarketingStatus:
    """Any end date means discontinued; a start date alone means active."""

    if packaging.get("marketing_end_date"):
        return MarketingStatus.DISCONTINUED
    if packaging.get("marketing_start_date"):
        return MarketingStatus.ACTIVE
    return MarketingStatus.UNKNOWN


def map_product(product: Mapping[str, Any]) -> list[Package]:
    """Map one openFDA product record to its packages."""

    dosage_form = product.get("dosage_form")
    packages: list[Package] = []
    for packaging in product.get("packaging") or []:
        package_ndc = packaging.get("package_ndc")
        size = parse_package_size(packaging.get("description"))
        if not package_ndc or size is None:
            logger.warning(
                "openfda_package_unparseable",
                product_ndc=product.get("product_ndc"),
                has_ndc=bool(package_ndc),
            )
            continue
        status = marketing_status(packaging)
        packages.append(
            Package(
                ndc=normalize_ndc(package_ndc),
                package_size=size,
                dosage_form=dosage_form.strip().upper() if dosage_form else None,
                is_active=status is MarketingStatus.ACTIVE,
                marketing_status=status,
                labeler=product.get("labeler_name"),
                product_ndc=product.get("product_ndc"),
                brand_name=product.get("brand_name"),
                generic_name=product.get("generic_name"),
            )
        )
    return packages


class OpenFDAClient(JsonApiClient):
    """Fetch marketed packages for an RxNorm concept from openFDA."""

    dependency = "openfda"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        api_key: str | None = None,
        page_limit: int = 100,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(http_client, retry_policy=retry_policy)
        self._api_key = api_key
        self._page_limit = page_limit

    @classmethod
    def from_settings(cls, settings: OpenFDASettings) -> "OpenFDAClient":
        http_client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={"Accept": "application/json"},
        )
        return cls(
            http_client,
            api_key=settings.api_key,
            page_limit=settings.page_limit,
            retry_policy=RetryPolicy(attempts=settings.retry_attempts),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_packages(self, concept_id: str) -> list[Package]:
        params: dict[str, Any] = {
            "search": f'openfda.rxcui:"{concept_id}"',
            "limit": self._page_limit,
        }
        if self._api_key:
            params["api_key"] = self._api_key
        # openFDA answers 404 when a search has no results.
        payload = await self.get_json("/ndc.json", params, not_found_ok=True)
        if payload is None:
            return []
        packages: list[Package] = []
        seen: set[str] = set()
        for product in payload.get("results") or []:
            for package in map_product(product):
                if package.ndc not in seen:
                    seen.add(package.ndc)
                    packages.append(package)
        logger.info("openfda_packages_fetched", concept_id=concept_id, count=len(packages))
        return packages


__all__ = [
    "OpenFDAClient",
    "UNIT_ALIASES",
    "map_product",
    "marketing_status",
    "normalize_ndc",
    "normalize_unit",
    "parse_package_size",
]
