"""HTTP-level tests for the recommender FastAPI application."""

from __future__ import annotations

from typing import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from services.recommender.app import create_app
from services.recommender.cache import CacheLayer, InMemoryCacheStore
from services.recommender.config import Settings
from services.recommender.interfaces import RawCandidate
from services.recommender.normalizer import DrugNormalizer
from services.recommender.orchestrator import RecommendationOrchestrator

CONCEPT = RawCandidate(concept_id="314076", name="lisinopril 10 MG Oral Tablet")


@pytest.fixture
async def client(provider, directory, key_builder, make_package) -> AsyncIterator[AsyncClient]:
    provider.exact["lisinopril"] = [CONCEPT]
    provider.concepts["314076"] = CONCEPT
    directory.packages["314076"] = [
        make_package("00071-0156-30", 30),
        make_package("00071-0156-90", 90),
    ]
    orchestrator = RecommendationOrchestrator(
        DrugNormalizer(provider, key_builder),
        directory,
        CacheLayer(InMemoryCacheStore()),
        key_builder,
    )
    app = create_app(settings=Settings(), orchestrator=orchestrator)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",  # FastAPI ignores the host for ASGI transports
    ) as client:
        yield client


@pytest.mark.anyio("asyncio")
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["aiEnabled"] is False


@pytest.mark.anyio("asyncio")
async def test_recommendation_by_name(client: AsyncClient) -> None:
    response = await client.post(
        "/recommendations",
        json={"drugName": "lisinopril", "quantity": 90},
        headers={"X-Request-ID": "req-123"},
    )

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    payload = response.json()
    assert payload["drug"]["conceptId"] == "314076"
    assert payload["recommendation"]["selection"]["selected"]["ndc"] == "00071-0156-90"
    assert payload["recommendation"]["selection"]["tier"] == "exact"
    assert payload["metadata"]["usedAi"] is False


@pytest.mark.anyio("asyncio")
async def test_recommendation_by_rxcui(client: AsyncClient) -> None:
    response = await client.post("/recommendations", json={"rxcui": "314076", "quantity": 60})

    assert response.status_code == 200
    assert response.json()["normalization"]["strategyUsed"] == "known_id"


@pytest.mark.anyio("asyncio")
async def test_unknown_drug_is_a_problem_response(client: AsyncClient) -> None:
    response = await client.post(
        "/recommendations", json={"drugName": "unknownium", "quantity": 30}
    )

    assert response.status_code == 404
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["kind"] == "no_match"
    assert payload["instance"] == "/recommendations"


@pytest.mark.anyio("asyncio")
async def test_invalid_quantity_is_a_bad_request(client: AsyncClient) -> None:
    response = await client.post(
        "/recommendations", json={"drugName": "lisinopril", "quantity": 0}
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_input"
    assert response.json()["field"] == "quantity"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "body",
    [
        {"quantity": 30},
        {"drugName": "lisinopril", "rxcui": "314076", "quantity": 30},
    ],
)
async def test_exactly_one_identifier_is_required(client: AsyncClient, body) -> None:
    response = await client.post("/recommendations", json=body)

    assert response.status_code == 422
    assert "lisinopril" not in response.text


@pytest.mark.anyio("asyncio")
async def test_normalization_endpoints(client: AsyncClient) -> None:
    single = await client.post("/normalizations", json={"drugName": "lisinopril"})
    batch = await client.post(
        "/normalizations/batch", json={"drugNames": ["lisinopril", "unknownium"]}
    )

    assert single.status_code == 200
    assert single.json()["best"]["conceptId"] == "314076"
    assert batch.status_code == 200
    items = batch.json()["items"]
    assert items[0]["result"]["best"]["conceptId"] == "314076"
    assert items[1]["error"]["kind"] == "no_match"


@pytest.mark.anyio("asyncio")
async def test_fill_precision_endpoint(client: AsyncClient) -> None:
    response = await client.post(
        "/fill-precision", json={"packageQuantity": 100, "requiredQuantity": 60}
    )

    assert response.status_code == 200
    assert response.json() == {
        "overfillPercentage": 66.7,
        "underfillPercentage": 0.0,
        "precision": "overfill",
    }


@pytest.mark.anyio("asyncio")
async def test_ai_usage_when_disabled(client: AsyncClient) -> None:
    response = await client.get("/ai/usage")

    assert response.status_code == 200
    assert response.json()["enabled"] is False
