from __future__ import annotations

import asyncio

import pytest

from conftest import make_aggregate, make_product
from errors import ValidationError
from models import Strategy, StrategyType
from recommendation_engine import (
    DEFAULT_CONS, DEFAULT_PROS, RecommendationEngine, build_reasoning,
    compute_confidence,
)
from repository import InMemoryRepository
from review_analysis import InMemoryReviewAggregateStore


class FailingReviews:
    """Delegates to a store but raises for selected ids."""

    def __init__(self, store, failing: set[str]):
        self.store = store
        self.failing = failing
        self.calls: dict[str, int] = {}

    async def get_review_aggregate(self, product_id):
        self.calls[product_id] = self.calls.get(product_id, 0) + 1
        if product_id in self.failing:
            raise RuntimeError("upstream unavailable")
        return await self.store.get_review_aggregate(product_id)


class FlakyReviews(FailingReviews):
    """Fails the first call per id, then succeeds."""

    async def get_review_aggregate(self, product_id):
        self.calls[product_id] = self.calls.get(product_id, 0) + 1
        if self.calls[product_id] == 1:
            raise ConnectionError("transient")
        return await self.store.get_review_aggregate(product_id)


class SlowReviews(FailingReviews):

    async def get_review_aggregate(self, product_id):
        if product_id in self.failing:
            await asyncio.sleep(1)
        return await self.store.get_review_aggregate(product_id)


class GatedReviews(FailingReviews):
    """Holds every lookup until ``expected`` lookups are waiting at once."""

    def __init__(self, store, expected: int):
        super().__init__(store, failing=set())
        self.expected = expected
        self.in_flight = 0
        self.peak = 0
        self.gate = None

    async def get_review_aggregate(self, product_id):
        if self.gate is None:
            self.gate = asyncio.Event()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight == self.expected:
            self.gate.set()
        await asyncio.wait_for(self.gate.wait(), timeout=2)
        return await self.store.get_review_aggregate(product_id)


def test_rank_assigns_dense_rankings_best_first(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    recs = asyncio.run(engine.rank(["5", "4", "3", "2", "1"], StrategyType.FANCY))

    assert [r.ranking for r in recs] == [1, 2, 3, 4, 5]
    scores = [r.score for r in recs]
    assert scores == sorted(scores, reverse=True)
    assert recs[0].product_id == "1"


def test_failed_resolution_drops_only_that_product(sample_repo, sample_reviews):
    # "1" (Apple) would score highest under fancy
    reviews = FailingReviews(sample_reviews, failing={"1"})
    engine = RecommendationEngine(sample_repo, reviews)
    recs = asyncio.run(engine.rank(["5", "1", "4"], "fancy"))

    assert [r.product_id for r in recs] == ["4", "5"]
    assert [r.ranking for r in recs] == [1, 2]


def test_unknown_product_is_skipped(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    recs = asyncio.run(engine.rank(["1", "does-not-exist"], "cost-effective"))
    assert [r.product_id for r in recs] == ["1"]


def test_all_failures_yield_empty_list(sample_repo, sample_reviews):
    reviews = FailingReviews(sample_reviews, failing={"1", "2"})
    engine = RecommendationEngine(sample_repo, reviews)
    assert asyncio.run(engine.rank(["1", "2"], "fancy")) == []


def test_empty_inputs_return_empty_list(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    assert asyncio.run(engine.rank([], "fancy")) == []
    assert asyncio.run(engine.rank(["1"], None)) == []


def test_invalid_strategy_is_rejected_before_resolution(sample_repo, sample_reviews):
    reviews = FailingReviews(sample_reviews, failing=set())
    engine = RecommendationEngine(sample_repo, reviews)
    with pytest.raises(ValidationError):
        asyncio.run(engine.rank(["1"], "luxury"))
    assert reviews.calls == {}


def test_non_list_product_ids_are_rejected(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    with pytest.raises(ValidationError):
        asyncio.run(engine.rank("1", "fancy"))


def test_rank_is_idempotent(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    strategy = Strategy(type="price-priority")
    first = asyncio.run(engine.rank(["1", "2", "3", "4", "5"], strategy))
    second = asyncio.run(engine.rank(["1", "2", "3", "4", "5"], strategy))
    assert [r.model_dump() for r in first] == [r.model_dump() for r in second]


def test_equal_scores_keep_input_order():
    repo = InMemoryRepository([
        make_product("a", price=100), make_product("b", price=100),
        make_product("c", price=100),
    ])
    reviews = InMemoryReviewAggregateStore([
        make_aggregate("a", rating=4), make_aggregate("b", rating=4),
        make_aggregate("c", rating=4),
    ])
    engine = RecommendationEngine(repo, reviews)
    recs = asyncio.run(engine.rank(["c", "a", "b"], "price-priority"))
    assert [r.product_id for r in recs] == ["c", "a", "b"]


def test_retries_recover_transient_failures(sample_repo, sample_reviews):
    flaky = FlakyReviews(sample_reviews, failing=set())
    engine = RecommendationEngine(sample_repo, flaky, retries=1)
    recs = asyncio.run(engine.rank(["1", "2"], "fancy"))
    assert len(recs) == 2
    assert flaky.calls == {"1": 2, "2": 2}


def test_without_retries_transient_failure_drops_product(sample_repo, sample_reviews):
    flaky = FlakyReviews(sample_reviews, failing=set())
    engine = RecommendationEngine(sample_repo, flaky)
    assert asyncio.run(engine.rank(["1"], "fancy")) == []


def test_timeout_counts_as_resolution_failure(sample_repo, sample_reviews):
    slow = SlowReviews(sample_reviews, failing={"2"})
    engine = RecommendationEngine(sample_repo, slow, timeout=0.05)
    recs = asyncio.run(engine.rank(["1", "2", "3"], "fancy"))
    assert [r.product_id for r in recs] == ["1", "3"]


def test_recommendation_explanations(sample_repo, sample_reviews):
    engine = RecommendationEngine(sample_repo, sample_reviews)
    rec = asyncio.run(engine.rank(["1"], "fancy"))[0]

    assert rec.confidence == 0.98
    assert rec.reasoning == [
        "Premium brand reputation: Apple",
        "High-quality build with 445 positive mentions",
        "Elegant design praised by users",
    ]
    assert rec.pros == ["build quality", "camera system", "battery life"]
    assert rec.cons == ["expensive", "heavy"]


def test_reasoning_templates_reference_price_and_rating():
    product = make_product(price=1199)
    aggregate = make_aggregate(rating=4.8)
    assert build_reasoning(product, aggregate, StrategyType.COST_EFFECTIVE)[0] == \
        "Excellent value at $1199 with 4.8/5 rating"
    assert build_reasoning(product, aggregate, StrategyType.PRICE_PRIORITY)[:2] == [
        "Most affordable option at $1199",
        "Maintains quality with 4.8/5 rating",
    ]
    assert build_reasoning(product, aggregate, StrategyType.FANCY)[1] == \
        "High-quality build with 0 positive mentions"


def test_generic_pros_and_cons_when_aggregate_has_none():
    repo = InMemoryRepository([make_product("x")])
    reviews = InMemoryReviewAggregateStore([make_aggregate("x", rating=3)])
    rec = asyncio.run(RecommendationEngine(repo, reviews).rank(["x"], "fancy"))[0]
    assert rec.pros == DEFAULT_PROS
    assert rec.cons == DEFAULT_CONS


def test_confidence_blends_volume_and_rating():
    assert compute_confidence(make_aggregate(total=0, rating=0)) == 0.0
    assert compute_confidence(make_aggregate(total=500, rating=2.5)) == 0.5
    assert compute_confidence(make_aggregate(total=5000, rating=5)) == 1.0


def test_products_are_resolved_concurrently(sample_repo, sample_reviews):
    gated = GatedReviews(sample_reviews, expected=5)
    engine = RecommendationEngine(sample_repo, gated)
    recs = asyncio.run(engine.rank(["1", "2", "3", "4", "5"], "cost-effective"))
    assert gated.peak == 5
    assert len(recs) == 5
