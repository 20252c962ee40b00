"""Shared fakes and fixtures for the recommender service tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.recommender.interfaces import RawCandidate  # noqa: E402
from services.recommender.keys import CacheKeyBuilder  # noqa: E402
from services.recommender.models import (  # noqa: E402
    MarketingStatus,
    Package,
    PackageSize,
)


class FakeNormalizationProvider:
    """In-memory stand-in for RxNav keyed by lower-cased query."""

    def __init__(self) -> None:
        self.exact: dict[str, list[RawCandidate]] = {}
        self.approximate: dict[str, list[RawCandidate]] = {}
        self.spelling: dict[str, list[str]] = {}
        self.concepts: dict[str, RawCandidate] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def _record(self, method: str, value: str) -> None:
        self.calls.append((method, value))
        failure = self.failures.get(method)
        if failure is not None:
            raise failure

    async def search_exact(self, name: str) -> list[RawCandidate]:
        self._record("search_exact", name)
        return list(self.exact.get(name.lower(), []))

    async def search_approximate(self, name: str) -> list[RawCandidate]:
        self._record("search_approximate", name)
        return list(self.approximate.get(name.lower(), []))

    async def spelling_suggestions(self, name: str) -> list[str]:
        self._record("spelling_suggestions", name)
        return list(self.spelling.get(name.lower(), []))

    async def get_concept(self, concept_id: str) -> Optional[RawCandidate]:
        self._record("get_concept", concept_id)
        return self.concepts.get(concept_id)


class FakePackageDirectory:
    def __init__(self) -> None:
        self.packages: dict[str, list[Package]] = {}
        self.calls: list[str] = []

    async def get_packages(self, concept_id: str) -> list[Package]:
        self.calls.append(concept_id)
        return list(self.packages.get(concept_id, []))


def build_package(
    ndc: str,
    quantity: float,
    *,
    unit: str = "TABLET",
    dosage_form: str | None = "TABLET",
    active: bool = True,
) -> Package:
    return Package(
        ndc=ndc,
        package_size=PackageSize(quantity=quantity, unit=unit),
        dosage_form=dosage_form,
        is_active=active,
        marketing_status=MarketingStatus.ACTIVE if active else MarketingStatus.DISCONTINUED,
    )


@pytest.fixture
def anyio_backend() -> str:
    """Limit ``pytest-anyio`` to the asyncio backend for these tests."""

    return "asyncio"


@pytest.fixture
def provider() -> FakeNormalizationProvider:
    return FakeNormalizationProvider()


@pytest.fixture
def directory() -> FakePackageDirectory:
    return FakePackageDirectory()


@pytest.fixture
def key_builder() -> CacheKeyBuilder:
    return CacheKeyBuilder("test-secret")


@pytest.fixture
def make_package() -> Callable[..., Package]:
    return build_package
