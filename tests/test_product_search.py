from __future__ import annotations

import asyncio

import pytest

from candidate_source import CandidateSource, StaticCandidateSource
from errors import CandidateSourceFailure, PersistenceFailure, ValidationError
from models import Strategy, StrategyType
from product_search import ProductSearchService
from repository import InMemoryRepository

CANDIDATES = [
    {"name": "Budget Buds", "price": 25, "brand": "Acme", "category": "Audio", "rating": 3.9},
    {"name": "Studio Pro", "price": 349, "brand": "Sony", "category": "Audio", "rating": 4.7},
    {"name": "Broken", "price": "n/a", "brand": "Acme", "category": "Audio"},
    {"name": "Mid Tier", "price": 120, "brand": "Jabra", "category": "Audio", "rating": 4.3},
]


class ExplodingSource(CandidateSource):
    name = "exploding"

    async def find_candidates(self, query, strategy=None):
        raise CandidateSourceFailure("Invalid JSON response from candidate source")


class FlakyRepository(InMemoryRepository):
    """Fails to persist candidates whose name contains 'Studio'."""

    async def create_product(self, data):
        if "Studio" in data.name:
            raise PersistenceFailure("Database error: connection reset")
        return await super().create_product(data)


def service(source=None, repo=None, **kw) -> ProductSearchService:
    return ProductSearchService(
        source or StaticCandidateSource(CANDIDATES), repo or InMemoryRepository(), **kw)


def test_search_filters_source_results():
    result = asyncio.run(service().search("earbuds", Strategy(type="cost-effective", max_price=200)))
    assert [c.name for c in result.candidates] == ["Budget Buds", "Mid Tier"]
    assert result.provenance == "static"
    assert result.fallback_used is False
    assert result.raw_count == 4


def test_source_failure_falls_back_to_labelled_mock_results():
    svc = service(source=ExplodingSource())
    result = asyncio.run(svc.search("earbuds", Strategy(type="price-priority")))
    assert result.fallback_used is True
    assert result.provenance == "mock"
    assert len(result.candidates) == 6
    assert all(c.source_platform == "mock" for c in result.candidates)


def test_source_failure_with_empty_fallback():
    svc = service(source=ExplodingSource(), fallback="empty")
    result = asyncio.run(svc.search("earbuds", Strategy(type="fancy")))
    assert result.candidates == []
    assert result.fallback_used is True
    assert result.provenance == "empty"


def test_mock_fallback_still_honours_constraints():
    svc = service(source=ExplodingSource())
    result = asyncio.run(svc.search("earbuds", Strategy(type="price-priority", max_price=40)))
    assert [c.price for c in result.candidates] == [29, 34, 39]


def test_realtime_source_used_only_when_requested():
    realtime = StaticCandidateSource([CANDIDATES[1]])
    realtime.name = "serpapi"
    svc = service(realtime_source=realtime)

    live = asyncio.run(svc.search("headphones", Strategy(type="fancy", realtime=True)))
    assert live.provenance == "serpapi"
    assert [c.name for c in live.candidates] == ["Studio Pro"]

    regular = asyncio.run(svc.search("headphones", Strategy(type="fancy")))
    assert regular.provenance == "static"


def test_search_validates_input():
    with pytest.raises(ValidationError):
        asyncio.run(service().search("   ", Strategy(type="fancy")))
    with pytest.raises(ValidationError):
        asyncio.run(service().search("earbuds", None))


def test_store_reports_per_item_failures_and_continues():
    repo = FlakyRepository()
    svc = service(repo=repo)
    found, stored = asyncio.run(svc.search_and_store("earbuds", Strategy(type="fancy")))

    assert len(found.candidates) == 3
    assert stored.stored == 2
    assert stored.errors == ["Failed to store Studio Pro: Database error: connection reset"]
    assert sorted(p.name for p in repo.products.values()) == ["Budget Buds", "Mid Tier"]


def test_search_without_storing():
    repo = InMemoryRepository()
    found, stored = asyncio.run(
        service(repo=repo).search_and_store("earbuds", Strategy(type="fancy"), store_results=False))
    assert len(found.candidates) == 3
    assert stored.stored == 0
    assert repo.products == {}


def test_store_mock_results_with_placeholder_links():
    repo = InMemoryRepository()
    svc = service(source=ExplodingSource(), repo=repo)
    _, stored = asyncio.run(svc.search_and_store("lamp", Strategy(type="fancy")))
    assert stored.stored == 6
    assert stored.errors == []
    assert all(p.source_platform == "mock" for p in repo.products.values())


def test_invalid_fallback_mode_rejected():
    with pytest.raises(ValueError):
        service(fallback="retry")


def test_search_metadata_follows_results_into_storage():
    source = StaticCandidateSource([dict(
        CANDIDATES[0], description="Compact buds", features=["ANC", "USB-C"],
        specifications={"battery": "6h"},
    )])
    found, stored = asyncio.run(
        service(source=source).search_and_store("  earbuds ", Strategy(type="price-priority")))

    meta = found.metadata
    assert meta.query == "earbuds"
    assert meta.strategy == StrategyType.PRICE_PRIORITY
    assert meta.source == "static"
    assert meta.search_id

    product = stored.products[0]
    assert product.search_metadata == meta
    assert product.description == "Compact buds"
    assert product.features == ["ANC", "USB-C"]
    assert product.specifications == {"battery": "6h"}
    dumped = product.model_dump(by_alias=True, mode="json")
    assert dumped["searchMetadata"]["searchId"] == meta.search_id


def test_fallback_metadata_names_the_fallback():
    found = asyncio.run(service(source=ExplodingSource()).search("lamp", Strategy(type="fancy")))
    assert found.metadata.source == "mock"
