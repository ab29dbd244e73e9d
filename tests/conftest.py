from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from models import (  # noqa: E402
    KeywordFrequency, Product, QualityIndicator, ReviewAggregate,
    SentimentDistribution,
)
from repository import InMemoryRepository  # noqa: E402
from review_analysis import InMemoryReviewAggregateStore  # noqa: E402
from sample_data import sample_products, sample_review_aggregates  # noqa: E402


def make_product(pid="p1", price=100.0, brand="Acme", **kw) -> Product:
    return Product(
        id=pid,
        name=kw.pop("name", f"Product {pid}"),
        price=price,
        brand=brand,
        category=kw.pop("category", "Electronics"),
        **kw,
    )


def make_aggregate(
    pid="p1",
    total=0,
    rating=0.0,
    positive=0,
    keywords=(),
    indicators=(),
    issues=(),
    aspects=(),
) -> ReviewAggregate:
    return ReviewAggregate(
        product_id=pid,
        total_comments=total,
        average_rating=rating,
        sentiment_distribution=SentimentDistribution(positive=positive),
        top_keywords=[KeywordFrequency(keyword=k, frequency=f) for k, f in keywords],
        quality_indicators=[QualityIndicator(indicator=i, mentions=m) for i, m in indicators],
        common_issues=list(issues),
        positive_aspects=list(aspects),
    )


@pytest.fixture()
def sample_repo() -> InMemoryRepository:
    return InMemoryRepository(sample_products())


@pytest.fixture()
def sample_reviews() -> InMemoryReviewAggregateStore:
    return InMemoryReviewAggregateStore(sample_review_aggregates())
