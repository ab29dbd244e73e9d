"""
Shopping Assistant — Strategy Scorer
strategy_scorer.py

Pure scoring functions: (product, review aggregate, strategy) → score in [0, 1].

Each strategy is a weighted sum of normalized sub-scores. The weight tables
are plain data (``STRATEGY_WEIGHTS``) and the sub-score functions are
dispatched through ``SCORERS``; nothing in here suspends or touches I/O.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Optional

from errors import ValidationError
from models import Product, ReviewAggregate, Strategy, StrategyType

logger = logging.getLogger(__name__)


# ============================================================
# Brand Reputation
# ============================================================

DEFAULT_BRAND_REPUTATION: dict[str, float] = {
    'Apple': 0.95,
    'Samsung': 0.90,
    'Google': 0.85,
    'OnePlus': 0.80,
    'Xiaomi': 0.70,
}

UNKNOWN_BRAND_SCORE = 0.5


@dataclass
class BrandReputationTable:
    """Brand → reputation lookup. Matching ignores case and surrounding whitespace."""
    scores: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_BRAND_REPUTATION))
    default: float = UNKNOWN_BRAND_SCORE

    def __post_init__(self):
        self._index = {k.strip().lower(): clamp(v) for k, v in self.scores.items()}
        self.default = clamp(self.default)

    def lookup(self, brand: Optional[str]) -> float:
        if not brand:
            return self.default
        return self._index.get(brand.strip().lower(), self.default)

    @classmethod
    def from_overrides(
        cls, overrides: Optional[dict[str, float]] = None,
        default: float = UNKNOWN_BRAND_SCORE,
    ) -> 'BrandReputationTable':
        """Built-in table with ``overrides`` layered on top."""
        scores = dict(DEFAULT_BRAND_REPUTATION)
        scores.update(overrides or {})
        return cls(scores=scores, default=default)


# ============================================================
# Weight Tables
# ============================================================

@dataclass(frozen=True)
class FancyWeights:
    brand_reputation: float = 0.30
    premium_mentions: float = 0.25
    quality_mentions: float = 0.25
    design_mentions: float = 0.20


@dataclass(frozen=True)
class CostEffectiveWeights:
    value: float = 0.40
    durability_mentions: float = 0.30
    worth_it_mentions: float = 0.20
    positive_sentiment: float = 0.10


@dataclass(frozen=True)
class PricePriorityWeights:
    price_competitiveness: float = 0.50
    basic_quality: float = 0.30
    issue_avoidance: float = 0.20


STRATEGY_WEIGHTS: dict[StrategyType, Any] = {
    StrategyType.FANCY: FancyWeights(),
    StrategyType.COST_EFFECTIVE: CostEffectiveWeights(),
    StrategyType.PRICE_PRIORITY: PricePriorityWeights(),
}


# Keyword groups: a keyword counts when its lowercased text contains any term.
PREMIUM_TERMS = ('premium', 'luxury', 'high-end', 'premium quality')
DESIGN_TERMS = ('design', 'beautiful', 'elegant', 'stylish')
DURABILITY_TERMS = ('durable', 'long-lasting', 'reliable', 'sturdy')
WORTH_IT_TERMS = ('worth it', 'good value', 'great value', 'worth every penny')

# Normalization ceilings
KEYWORD_MENTION_CEILING = 100
WORTH_IT_MENTION_CEILING = 50
QUALITY_MENTION_CEILING = 500
VALUE_PRICE_CEILING = 2000
BUDGET_PRICE_CEILING = 1500
BASIC_QUALITY_RATING = 4.0
ISSUE_CEILING = 10


# ============================================================
# Numeric Helpers
# ============================================================

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float, places: int = 2) -> float:
    """
    Round half away from zero after discarding binary float noise.

    0.95 * 0.30 evaluates to 0.28499999999999998; trimming to ten places
    first makes it 0.285, which then rounds to 0.29.
    """
    cleaned = Decimal(repr(value)).quantize(Decimal('1e-10'), rounding=ROUND_HALF_UP)
    exp = Decimal(1).scaleb(-places)
    return float(cleaned.quantize(exp, rounding=ROUND_HALF_UP))


def keyword_mentions(aggregate: ReviewAggregate, terms: tuple[str, ...]) -> int:
    """Sum of frequencies for keywords containing any of ``terms``."""
    total = 0
    for kw in aggregate.top_keywords:
        text = kw.keyword.lower()
        if any(term in text for term in terms):
            total += kw.frequency
    return total


def weighted_total(components: dict[str, tuple[float, float]]) -> float:
    """``components`` maps name → (sub-score, weight); sub-scores are clamped first."""
    return sum(clamp(s) * w for s, w in components.values())


# ============================================================
# Strategy Scorers
# ============================================================

def score_fancy(
    product: Product, aggregate: ReviewAggregate, brands: BrandReputationTable,
) -> dict[str, tuple[float, float]]:
    w = STRATEGY_WEIGHTS[StrategyType.FANCY]
    top_quality = aggregate.quality_indicators[0].mentions if aggregate.quality_indicators else 0
    return {
        'brand_reputation': (brands.lookup(product.brand), w.brand_reputation),
        'premium_mentions': (
            min(1.0, keyword_mentions(aggregate, PREMIUM_TERMS) / KEYWORD_MENTION_CEILING),
            w.premium_mentions),
        'quality_mentions': (
            min(1.0, top_quality / QUALITY_MENTION_CEILING), w.quality_mentions),
        'design_mentions': (
            min(1.0, keyword_mentions(aggregate, DESIGN_TERMS) / KEYWORD_MENTION_CEILING),
            w.design_mentions),
    }


def score_cost_effective(
    product: Product, aggregate: ReviewAggregate, brands: BrandReputationTable,
) -> dict[str, tuple[float, float]]:
    w = STRATEGY_WEIGHTS[StrategyType.COST_EFFECTIVE]
    price_score = max(0.0, (VALUE_PRICE_CEILING - product.price) / VALUE_PRICE_CEILING)
    quality_score = aggregate.average_rating / 5
    if aggregate.total_comments > 0:
        positive_ratio = aggregate.sentiment_distribution.positive / aggregate.total_comments
    else:
        positive_ratio = 0.0
    return {
        'value': ((clamp(price_score) + clamp(quality_score)) / 2, w.value),
        'durability_mentions': (
            min(1.0, keyword_mentions(aggregate, DURABILITY_TERMS) / KEYWORD_MENTION_CEILING),
            w.durability_mentions),
        'worth_it_mentions': (
            min(1.0, keyword_mentions(aggregate, WORTH_IT_TERMS) / WORTH_IT_MENTION_CEILING),
            w.worth_it_mentions),
        'positive_sentiment': (positive_ratio, w.positive_sentiment),
    }


def score_price_priority(
    product: Product, aggregate: ReviewAggregate, brands: BrandReputationTable,
) -> dict[str, tuple[float, float]]:
    w = STRATEGY_WEIGHTS[StrategyType.PRICE_PRIORITY]
    if aggregate.average_rating >= BASIC_QUALITY_RATING:
        basic_quality = 1.0
    else:
        basic_quality = aggregate.average_rating / BASIC_QUALITY_RATING
    return {
        'price_competitiveness': (
            max(0.0, (BUDGET_PRICE_CEILING - product.price) / BUDGET_PRICE_CEILING),
            w.price_competitiveness),
        'basic_quality': (basic_quality, w.basic_quality),
        'issue_avoidance': (
            max(0.0, 1 - len(aggregate.common_issues) / ISSUE_CEILING),
            w.issue_avoidance),
    }


ScorerFn = Callable[[Product, ReviewAggregate, BrandReputationTable], dict[str, tuple[float, float]]]

SCORERS: dict[StrategyType, ScorerFn] = {
    StrategyType.FANCY: score_fancy,
    StrategyType.COST_EFFECTIVE: score_cost_effective,
    StrategyType.PRICE_PRIORITY: score_price_priority,
}


# ============================================================
# Public API
# ============================================================

def parse_strategy(value: Any) -> StrategyType:
    """Resolve a strategy tag, a ``Strategy`` or a ``StrategyType``; raise on anything else."""
    if isinstance(value, Strategy):
        return value.type
    if isinstance(value, StrategyType):
        return value
    try:
        return StrategyType(value)
    except ValueError:
        valid = ', '.join(s.value for s in StrategyType)
        raise ValidationError(
            f"Invalid strategy: {value!r}",
            details=[f"strategy must be one of: {valid}"],
        ) from None


def score_breakdown(
    product: Product,
    aggregate: ReviewAggregate,
    strategy: StrategyType,
    brands: Optional[BrandReputationTable] = None,
) -> dict[str, tuple[float, float]]:
    brands = brands or BrandReputationTable()
    return SCORERS[parse_strategy(strategy)](product, aggregate, brands)


def score_product(
    product: Product,
    aggregate: ReviewAggregate,
    strategy: StrategyType,
    brands: Optional[BrandReputationTable] = None,
) -> float:
    """Score ``product`` under ``strategy``; clamped to [0, 1], rounded half-up to 2 places."""
    components = score_breakdown(product, aggregate, strategy, brands)
    total = round_half_up(clamp(weighted_total(components)))

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "score %s [%s] = %.2f (%s)",
            product.id, parse_strategy(strategy).value, total,
            ', '.join(f"{k}={clamp(s):.3f}x{w}" for k, (s, w) in components.items()),
        )
    return total
