"""
Shopping Assistant — Recommendation Engine
recommendation_engine.py

Responsibilities:
  1. Resolve each product and its review aggregate (concurrently)
  2. Score survivors with the strategy scorer
  3. Attach confidence, reasoning, pros and cons
  4. Sort by score and assign dense 1-based rankings

A product whose resolution fails is dropped from the output; the rest of
the batch carries on. If every product fails the result is an empty list,
not an exception.
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from errors import ResolutionFailure, ValidationError
from models import (
    Product, ReviewAggregate, Recommendation, Strategy, StrategyType,
    UserPreferences,
)
from strategy_scorer import (
    BrandReputationTable, parse_strategy, round_half_up, score_product,
)

logger = logging.getLogger(__name__)


# ============================================================
# Explanation Templates
# ============================================================

REVIEW_VOLUME_CEILING = 1000
REVIEW_VOLUME_WEIGHT = 0.6
RATING_WEIGHT = 0.4

DEFAULT_PROS = ['Good overall quality', 'Reliable performance']
DEFAULT_CONS = ['Minor issues reported']
MAX_PROS = 3
MAX_CONS = 2


def compute_confidence(aggregate: ReviewAggregate) -> float:
    """Evidence behind a recommendation: review volume (60%) and rating (40%)."""
    volume = min(aggregate.total_comments / REVIEW_VOLUME_CEILING, 1)
    rating = aggregate.average_rating / 5
    return round_half_up(volume * REVIEW_VOLUME_WEIGHT + rating * RATING_WEIGHT)


def build_reasoning(
    product: Product, aggregate: ReviewAggregate, strategy: StrategyType,
) -> list[str]:
    price = _fmt_number(product.price)
    rating = _fmt_number(aggregate.average_rating)

    if strategy == StrategyType.FANCY:
        mentions = aggregate.quality_indicators[0].mentions if aggregate.quality_indicators else 0
        return [
            f"Premium brand reputation: {product.brand}",
            f"High-quality build with {mentions} positive mentions",
            "Elegant design praised by users",
        ]
    if strategy == StrategyType.COST_EFFECTIVE:
        return [
            f"Excellent value at ${price} with {rating}/5 rating",
            "Durable and reliable based on user feedback",
            "Worth the investment for long-term use",
        ]
    return [
        f"Most affordable option at ${price}",
        f"Maintains quality with {rating}/5 rating",
        "Good basic functionality without premium markup",
    ]


def build_pros(aggregate: ReviewAggregate) -> list[str]:
    return list(aggregate.positive_aspects[:MAX_PROS]) or list(DEFAULT_PROS)


def build_cons(aggregate: ReviewAggregate) -> list[str]:
    return list(aggregate.common_issues[:MAX_CONS]) or list(DEFAULT_CONS)


# ============================================================
# Recommendation Engine
# ============================================================

@dataclass
class ScoredProduct:
    """Intermediate result for one resolved product."""
    product: Product
    aggregate: ReviewAggregate
    score: float
    confidence: float


class RecommendationEngine:
    """
    Ranks a set of product ids under a shopping strategy.

    Collaborators are duck-typed:
      products.get_product(id)            -> Optional[Product]
      reviews.get_review_aggregate(id)    -> Optional[ReviewAggregate]

    ``None`` means "not found" and is never retried. Exceptions are treated
    as transient and retried up to ``retries`` extra times; each attempt is
    bounded by ``timeout`` seconds when set.
    """

    def __init__(
        self,
        products: Any,
        reviews: Any,
        brands: Optional[BrandReputationTable] = None,
        retries: int = 0,
        timeout: Optional[float] = None,
    ):
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.products = products
        self.reviews = reviews
        self.brands = brands or BrandReputationTable()
        self.retries = retries
        self.timeout = timeout

    async def rank(
        self,
        product_ids: Sequence[str],
        strategy: Strategy | StrategyType | str | None,
        preferences: Optional[UserPreferences] = None,
    ) -> list[Recommendation]:
        """Score, explain and rank ``product_ids``; best first."""
        if strategy is None or strategy == '':
            return []
        strategy_type = parse_strategy(strategy)
        if isinstance(product_ids, (str, bytes)) or not isinstance(product_ids, Sequence):
            raise ValidationError("products must be an array of product ids")
        if not product_ids:
            return []

        start = time.monotonic()
        results = await asyncio.gather(
            *(self._resolve(str(pid)) for pid in product_ids),
            return_exceptions=True,
        )

        scored: list[ScoredProduct] = []
        for pid, result in zip(product_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Skipping product %s: %s", pid, result)
                continue
            product, aggregate = result
            scored.append(ScoredProduct(
                product=product,
                aggregate=aggregate,
                score=score_product(product, aggregate, strategy_type, self.brands),
                confidence=compute_confidence(aggregate),
            ))

        # list.sort is stable: equal scores keep input order
        scored.sort(key=lambda s: s.score, reverse=True)
        recommendations = [
            self._to_recommendation(s, strategy_type, rank)
            for rank, s in enumerate(scored, start=1)
        ]

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(
            "Ranked %d/%d products with strategy %s in %dms",
            len(recommendations), len(product_ids), strategy_type.value, elapsed,
        )
        if preferences is not None:
            logger.debug("User preferences received (not applied): %s",
                         preferences.model_dump(exclude_defaults=True))
        return recommendations

    # ----------------------------------------------------------
    # Resolution
    # ----------------------------------------------------------

    async def _resolve(self, product_id: str) -> tuple[Product, ReviewAggregate]:
        product = await self._fetch(self.products.get_product, product_id, 'product')
        aggregate = await self._fetch(
            self.reviews.get_review_aggregate, product_id, 'review aggregate')
        return product, aggregate

    async def _fetch(self, getter: Any, product_id: str, what: str) -> Any:
        attempts = self.retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                call = getter(product_id)
                value = await (asyncio.wait_for(call, self.timeout) if self.timeout else call)
            except ResolutionFailure:
                raise
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"{what} lookup timed out after {self.timeout}s")
            except Exception as e:
                last_error = e
            else:
                if value is None:
                    raise ResolutionFailure(product_id, f"{what} not found")
                return value
            if attempt < attempts:
                logger.info("Retrying %s lookup for %s (attempt %d/%d): %s",
                            what, product_id, attempt + 1, attempts, last_error)
        raise ResolutionFailure(product_id, f"{what} lookup failed: {last_error}")

    def _to_recommendation(
        self, sp: ScoredProduct, strategy: StrategyType, ranking: int,
    ) -> Recommendation:
        return Recommendation(
            product_id=sp.product.id,
            score=sp.score,
            ranking=ranking,
            reasoning=build_reasoning(sp.product, sp.aggregate, strategy),
            confidence=sp.confidence,
            pros=build_pros(sp.aggregate),
            cons=build_cons(sp.aggregate),
        )


# ============================================================
# Helpers
# ============================================================

def _fmt_number(value: float) -> str:
    """1199.0 → '1199', 4.75 → '4.75'."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
