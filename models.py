"""
Shopping Assistant — Core Pydantic Models
models.py

Wire models speak camelCase (``productId``, ``maxPrice``) and accept
snake_case on input.
"""
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/300x300"
NO_LINK = "#"


# ============================================================
# Base
# ============================================================

class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )


# ============================================================
# Enums
# ============================================================

class StrategyType(str, Enum):
    FANCY = "fancy"
    COST_EFFECTIVE = "cost-effective"
    PRICE_PRIORITY = "price-priority"


# ============================================================
# Strategy
# ============================================================

class Strategy(WireModel):
    type: StrategyType
    max_price: Optional[float] = None
    min_price: Optional[float] = None
    min_rating: Optional[float] = None
    preferred_brands: list[str] = Field(default_factory=list)
    excluded_brands: list[str] = Field(default_factory=list)
    realtime: bool = False

    @model_validator(mode="before")
    @classmethod
    def coerce_bare_type(cls, data: Any) -> Any:
        if isinstance(data, (str, StrategyType)):
            return {"type": data}
        return data

    @field_validator("max_price", "min_price")
    @classmethod
    def validate_price_bound(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("price bounds must be non-negative")
        return v

    @field_validator("min_rating")
    @classmethod
    def validate_min_rating(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0 <= v <= 5:
            raise ValueError("minRating must be between 0 and 5")
        return v


class UserPreferences(WireModel):
    """Pass-through hints; recorded but not applied during scoring."""
    price_range: Optional[dict[str, float]] = None
    preferred_brands: list[str] = Field(default_factory=list)
    excluded_keywords: list[str] = Field(default_factory=list)


# ============================================================
# Core Domain Models
# ============================================================

class Product(WireModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    price: float = Field(ge=0)
    brand: str
    category: str
    image_url: str = PLACEHOLDER_IMAGE_URL
    product_url: str = NO_LINK
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    review_count: int = Field(default=0, ge=0)
    source_platform: str = "Unknown"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Candidate(WireModel):
    """A filtered, normalized candidate from a discovery source."""
    name: str
    price: float
    brand: str
    category: str
    image_url: str = PLACEHOLDER_IMAGE_URL
    product_url: str = NO_LINK
    rating: float = 0
    review_count: int = 0
    source_platform: str = "Unknown"
    description: str = ""
    features: list[str] = Field(default_factory=list)
    specifications: dict[str, Any] = Field(default_factory=dict)


class SentimentDistribution(WireModel):
    positive: int = Field(default=0, ge=0)
    negative: int = Field(default=0, ge=0)
    neutral: int = Field(default=0, ge=0)


class KeywordFrequency(WireModel):
    keyword: str
    frequency: int = Field(ge=0)


class QualityIndicator(WireModel):
    indicator: str
    mentions: int = Field(ge=0)


class ReviewAggregate(WireModel):
    product_id: str
    total_comments: int = Field(default=0, ge=0)
    average_rating: float = Field(default=0, ge=0, le=5)
    sentiment_distribution: SentimentDistribution = Field(default_factory=SentimentDistribution)
    top_keywords: list[KeywordFrequency] = Field(default_factory=list)
    quality_indicators: list[QualityIndicator] = Field(default_factory=list)
    common_issues: list[str] = Field(default_factory=list)
    positive_aspects: list[str] = Field(default_factory=list)


class Recommendation(WireModel):
    product_id: str
    score: float
    ranking: int
    reasoning: list[str]
    confidence: float
    pros: list[str]
    cons: list[str]


# ============================================================
# Catalog (Persistence) Models
# ============================================================

class ProductCreate(WireModel):
    name: str
    price: float
    brand: str
    category: str
    image_url: str
    product_url: str
    source_platform: str
    rating: Optional[float] = None
    review_count: int = 0


class ProductUpdate(WireModel):
    name: Optional[str] = None
    price: Optional[float] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    source_platform: Optional[str] = None


class ProductFilters(WireModel):
    brand: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_rating: Optional[float] = None
    source_platform: Optional[str] = None


# ============================================================
# API Request/Response Models
# ============================================================

class RecommendationRequest(WireModel):
    products: list[str]
    strategy: Strategy
    user_preferences: Optional[UserPreferences] = None


class SearchRequest(WireModel):
    customer_input: str
    strategy: Strategy
    store_results: bool = True


class CommentAnalysisRequest(WireModel):
    comments: list[dict[str, Any]]


class SearchMetadata(WireModel):
    """Where a batch of search results came from."""
    search_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    query: str
    strategy: StrategyType
    source: str


class StoredProduct(Product):
    """A catalog row written by the search pipeline, with its discovery details."""
    description: str = ""
    features: list[str] = Field(default_factory=list)
    specifications: dict[str, Any] = Field(default_factory=dict)
    search_metadata: Optional[SearchMetadata] = None


class SearchResult(WireModel):
    candidates: list[Candidate]
    provenance: str
    fallback_used: bool = False
    raw_count: int = 0
    metadata: Optional[SearchMetadata] = None


class StoreResult(WireModel):
    stored: int = 0
    products: list[StoredProduct] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    components: dict[str, dict]
    version: str
    uptime_seconds: int


# ============================================================
# Utility: URL normalization
# ============================================================

def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in url


def normalize_url(url: Any, placeholder: str = PLACEHOLDER_IMAGE_URL) -> str:
    """Trim, add a missing scheme, and fall back to ``placeholder`` when malformed."""
    if not url or not isinstance(url, str):
        return placeholder
    fixed = url.strip()
    if fixed == NO_LINK:
        return NO_LINK
    if not fixed.startswith(("http://", "https://")):
        fixed = "https://" + fixed
    return fixed if is_valid_url(fixed) else placeholder
