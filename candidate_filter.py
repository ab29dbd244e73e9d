"""
Shopping Assistant — Candidate Filter
candidate_filter.py

Prunes raw discovery results to the candidates that satisfy a strategy's
constraints, then normalizes the survivors into ``Candidate`` models.
Malformed entries are dropped, never raised; input order is preserved.
"""
from __future__ import annotations
import logging
import math
from typing import Any, Iterable, Optional

from pydantic import ValidationError as ModelValidationError

from models import (
    Candidate, NO_LINK, PLACEHOLDER_IMAGE_URL, SearchMetadata, Strategy,
    normalize_url,
)

logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ('name', 'brand', 'category')


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _text(value: Any, default: str) -> str:
    return value.strip() if isinstance(value, str) and value.strip() else default


def _pick(raw: dict, *keys: str, default: Any = None) -> Any:
    """First truthy value among camelCase / snake_case spellings."""
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return default


# ============================================================
# Constraint Checks
# ============================================================

def rejection_reason(raw: Any, strategy: Optional[Strategy]) -> Optional[str]:
    """Why ``raw`` fails the filter, or None when it survives."""
    if not isinstance(raw, dict):
        return "not an object"

    for name in REQUIRED_TEXT_FIELDS:
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            return f"missing {name}"

    price = raw.get('price')
    if price is None:
        return "missing price"
    if not _is_number(price) or price < 0:
        return f"invalid price {price!r}"

    rating = raw.get('rating')
    if rating is not None and (not _is_number(rating) or not 0 <= rating <= 5):
        return f"invalid rating {rating!r}"

    if strategy is None:
        return None

    if strategy.max_price is not None and price > strategy.max_price:
        return f"price {price} above max {strategy.max_price}"
    if strategy.min_price is not None and price < strategy.min_price:
        return f"price {price} below min {strategy.min_price}"
    if strategy.min_rating is not None and (rating or 0) < strategy.min_rating:
        return f"rating {rating} below min {strategy.min_rating}"
    if strategy.preferred_brands and raw['brand'] not in strategy.preferred_brands:
        return f"brand {raw['brand']} not preferred"
    if strategy.excluded_brands and raw['brand'] in strategy.excluded_brands:
        return f"brand {raw['brand']} excluded"
    return None


# ============================================================
# Normalization
# ============================================================

def normalize_candidate(raw: dict) -> Candidate:
    """Fill optional fields with defaults. ``raw`` must already pass the filter."""
    review_count = _pick(raw, 'reviewCount', 'review_count', default=0)
    if not _is_number(review_count) or review_count < 0:
        review_count = 0

    features = raw.get('features') or []
    specifications = raw.get('specifications') or {}

    return Candidate(
        name=raw['name'],
        price=raw['price'],
        brand=raw['brand'],
        category=raw['category'],
        image_url=normalize_url(
            _pick(raw, 'imageUrl', 'image_url'), PLACEHOLDER_IMAGE_URL),
        product_url=normalize_url(
            _pick(raw, 'productUrl', 'product_url', default=NO_LINK), NO_LINK),
        rating=raw.get('rating') or 0,
        review_count=int(review_count),
        source_platform=_text(
            _pick(raw, 'sourcePlatform', 'source_platform'), 'Unknown'),
        description=_text(raw.get('description'), ''),
        features=[str(f) for f in features] if isinstance(features, list) else [],
        specifications=specifications if isinstance(specifications, dict) else {},
    )


def filter_candidates(
    raw_candidates: Any, strategy: Optional[Strategy] = None,
) -> list[Candidate]:
    """Apply ``strategy`` constraints to ``raw_candidates``; survivors keep input order."""
    if not isinstance(raw_candidates, list):
        logger.warning("Candidate payload is not a list (%s); nothing to filter",
                       type(raw_candidates).__name__)
        return []

    survivors: list[Candidate] = []
    rejected = 0
    for index, raw in enumerate(raw_candidates):
        reason = rejection_reason(raw, strategy)
        if reason:
            rejected += 1
            logger.debug("Candidate %d rejected: %s", index, reason)
            continue
        try:
            survivors.append(normalize_candidate(raw))
        except ModelValidationError as e:
            rejected += 1
            logger.debug("Candidate %d rejected: %d invalid fields", index, e.error_count())

    logger.info("Candidate filter: %d kept, %d rejected", len(survivors), rejected)
    return survivors


def summarize_candidates(
    candidates: Iterable[Candidate], metadata: Optional[SearchMetadata] = None,
) -> dict:
    """Price range and brand/category counts for a result set, tagged with ``metadata``."""
    items = list(candidates)
    prices = [c.price for c in items if c.price > 0]
    summary = {}
    if metadata is not None:
        summary.update(metadata.model_dump(by_alias=True, mode="json"))
    summary.update({
        'productCount': len(items),
        'priceRange': {
            'min': min(prices) if prices else 0,
            'max': max(prices) if prices else 0,
            'average': round(sum(prices) / len(prices), 2) if prices else 0,
        },
        'brandCount': len({c.brand for c in items}),
        'categoryCount': len({c.category for c in items}),
    })
    return summary
