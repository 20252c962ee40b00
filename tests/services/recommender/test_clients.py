"""Tests for the RxNav and openFDA HTTP clients using ``httpx.MockTransport``."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from services.recommender.clients import OpenFDAClient, RxNormClient
from services.recommender.clients.openfda import (
    marketing_status,
    normalize_ndc,
    parse_package_size,
)
from services.recommender.errors import DependencyError, DependencyTimeoutError
from services.recommender.models import MarketingStatus
from services.recommender.resilience import RetryPolicy

NO_WAIT = RetryPolicy(attempts=3, initial_delay=0.0, max_delay=0.0)

Handler = Callable[[httpx.Request], httpx.Response]


def _http(handler: Handler, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=base_url,
        timeout=httpx.Timeout(5.0),
    )


def _rxnorm(handler: Handler, policy: RetryPolicy = NO_WAIT) -> RxNormClient:
    return RxNormClient(_http(handler, "https://rxnav.test/REST"), retry_policy=policy)


def _openfda(handler: Handler, **kwargs) -> OpenFDAClient:
    return OpenFDAClient(
        _http(handler, "https://api.fda.test/drug"), retry_policy=NO_WAIT, **kwargs
    )


# ---------------------------------------------------------------------------
# RxNav
# ---------------------------------------------------------------------------


@pytest.mark.anyio("asyncio")
async def test_rxnorm_exact_search_resolves_names() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/REST/rxcui.json":
            return httpx.Response(200, json={"idGroup": {"rxnormId": ["29046"]}})
        if request.url.path == "/REST/rxcui/29046/properties.json":
            return httpx.Response(
                200, json={"properties": {"rxcui": "29046", "name": "lisinopril", "tty": "IN"}}
            )
        return httpx.Response(404)

    client = _rxnorm(handler)
    candidates = await client.search_exact("lisinopril")
    await client.aclose()

    assert [(c.concept_id, c.name, c.term_type) for c in candidates] == [
        ("29046", "lisinopril", "IN")
    ]
    assert seen[0].url.params["name"] == "lisinopril"
    assert seen[0].url.params["search"] == "2"


@pytest.mark.anyio("asyncio")
async def test_rxnorm_exact_search_without_ids_returns_empty() -> None:
    client = _rxnorm(lambda request: httpx.Response(200, json={"idGroup": {"name": "zzz"}}))

    assert await client.search_exact("zzz") == []


@pytest.mark.anyio("asyncio")
async def test_rxnorm_approximate_keeps_best_rank_per_concept() -> None:
    body = {
        "approximateGroup": {
            "candidate": [
                {"rxcui": "29046", "score": "75", "rank": "2", "name": "lisinopril"},
                {"rxcui": "29046", "score": "100", "rank": "1", "name": "lisinopril"},
                {"rxcui": "314076", "score": "60", "rank": "3"},
                {"score": "10", "rank": "4"},
            ]
        }
    }
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=body)

    candidates = await _rxnorm(handler).search_approximate("lisinoprill")

    by_id = {candidate.concept_id: candidate for candidate in candidates}
    assert set(by_id) == {"29046", "314076"}
    assert (by_id["29046"].score, by_id["29046"].rank) == (100.0, 1)
    assert by_id["314076"].name is None
    assert seen[0].url.params["maxEntries"] == "10"


@pytest.mark.anyio("asyncio")
async def test_rxnorm_spelling_suggestions() -> None:
    body = {"suggestionGroup": {"suggestionList": {"suggestion": ["lisinopril", "lisinopril kit"]}}}
    client = _rxnorm(lambda request: httpx.Response(200, json=body))

    assert await client.spelling_suggestions("lisnopril") == ["lisinopril", "lisinopril kit"]


@pytest.mark.anyio("asyncio")
async def test_rxnorm_unknown_concept_returns_none() -> None:
    client = _rxnorm(lambda request: httpx.Response(404, json={}))

    assert await client.get_concept("424242") is None


@pytest.mark.anyio("asyncio")
async def test_transient_errors_are_retried() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"suggestionGroup": {}})

    assert await _rxnorm(handler).spelling_suggestions("abc") == []
    assert attempts["count"] == 3


@pytest.mark.anyio("asyncio")
async def test_exhausted_retries_raise_dependency_error() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(500)

    with pytest.raises(DependencyError) as exc_info:
        await _rxnorm(handler).spelling_suggestions("abc")

    assert attempts["count"] == 3
    assert exc_info.value.fields == {"dependency": "rxnorm", "upstream_status": 500}


@pytest.mark.anyio("asyncio")
async def test_client_errors_are_not_retried() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(400)

    with pytest.raises(DependencyError):
        await _rxnorm(handler).spelling_suggestions("abc")
    assert attempts["count"] == 1


@pytest.mark.anyio("asyncio")
async def test_timeouts_raise_dependency_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow upstream", request=request)

    with pytest.raises(DependencyTimeoutError) as exc_info:
        await _rxnorm(handler, RetryPolicy(attempts=1)).spelling_suggestions("abc")

    assert exc_info.value.fields == {"dependency": "rxnorm", "timeout_seconds": 5.0}


@pytest.mark.anyio("asyncio")
async def test_invalid_json_raises_dependency_error() -> None:
    client = _rxnorm(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(DependencyError, match="invalid JSON"):
        await client.spelling_suggestions("abc")


# ---------------------------------------------------------------------------
# openFDA
# ---------------------------------------------------------------------------

PRODUCT = {
    "product_ndc": "0071-0156",
    "brand_name": "Zestril",
    "generic_name": "lisinopril",
    "labeler_name": "Example Labs",
    "dosage_form": "tablet",
    "packaging": [
        {
            "package_ndc": "0071-0156-23",
            "description": "100 TABLET in 1 BOTTLE (0071-0156-23)",
            "marketing_start_date": "20100101",
        },
        {
            "package_ndc": "0071-0156-40",
            "description": "30 TABLET in 1 BOTTLE (0071-0156-40)",
            "marketing_start_date": "20100101",
            "marketing_end_date": "20200101",
        },
        {"package_ndc": "0071-0156-99", "description": "BOTTLE"},
    ],
}


@pytest.mark.anyio("asyncio")
async def test_openfda_maps_packages() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": [PRODUCT, PRODUCT]})

    packages = await _openfda(handler, api_key="k-123").get_packages("314076")

    assert [package.ndc for package in packages] == ["00071-0156-23", "00071-0156-40"]
    active, discontinued = packages
    assert active.package_size.quantity == 100
    assert active.package_size.unit == "TABLET"
    assert active.dosage_form == "TABLET"
    assert active.is_active is True
    assert active.brand_name == "Zestril"
    assert discontinued.is_active is False
    assert discontinued.marketing_status is MarketingStatus.DISCONTINUED
    params = seen[0].url.params
    assert params["search"] == 'openfda.rxcui:"314076"'
    assert params["limit"] == "100"
    assert params["api_key"] == "k-123"


@pytest.mark.anyio("asyncio")
async def test_openfda_not_found_means_no_packages() -> None:
    client = _openfda(lambda request: httpx.Response(404, json={"error": {"code": "NOT_FOUND"}}))

    assert await client.get_packages("314076") == []


@pytest.mark.parametrize(
    ("description", "quantity", "unit"),
    [
        ("100 TABLET in 1 BOTTLE", 100, "TABLET"),
        ("30 mL in 1 BOTTLE", 30, "ML"),
        ("5 g in 1 TUBE", 5, "GM"),
        ("1 KIT", 1, "KIT"),
        ("BOX of 10 VIALS", 10, "VIAL"),
    ],
)
def test_parse_package_size(description: str, quantity: float, unit: str) -> None:
    size = parse_package_size(description)

    assert size is not None
    assert (size.quantity, size.unit) == (quantity, unit)


@pytest.mark.parametrize("description", [None, "", "BOTTLE", "0 TABLET in 1 BOTTLE"])
def test_unparseable_package_size_returns_none(description) -> None:
    assert parse_package_size(description) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0071-0156-23", "00071-0156-23"),
        ("12345-678-90", "12345-0678-90"),
        ("12345-6789-1", "12345-6789-01"),
        ("00071-0156-23", "00071-0156-23"),
        ("00071015623", "00071-0156-23"),
    ],
)
def test_normalize_ndc_pads_each_segment_to_5_4_2(raw: str, expected: str) -> None:
    assert normalize_ndc(raw) == expected


def test_marketing_status_rules() -> None:
    assert marketing_status({"marketing_start_date": "20100101"}) is MarketingStatus.ACTIVE
    assert (
        marketing_status({"marketing_start_date": "20100101", "marketing_end_date": "20200101"})
        is MarketingStatus.DISCONTINUED
    )
    assert marketing_status({}) is MarketingStatus.UNKNOWN
