"""
Shopping Assistant — FastAPI Application Layer
api.py

Endpoints:
  1. POST /api/recommendations/generate — Strategy-ranked recommendations
  2. POST /api/search                   — Discover products (and store them)
  3. POST /api/search-only              — Discover products without storing
  4. GET  /api/strategies               — Shopping strategies and weights
  4b. GET /api/examples                 — Example queries per strategy
  5. GET  /api/products                 — Catalog list (filters + pagination)
  6. GET  /api/products/search          — Catalog text search
  7. GET/POST/PUT/DELETE /api/products  — Catalog CRUD
  8. GET  /api/comments/analysis/{id}   — Stored review aggregate
  9. POST /api/comments/analyze/{id}    — Analyze a comment list
  10. GET /health                       — Health check
"""
from __future__ import annotations
import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from asyncpg_repository import AsyncPGProductRepository, DatabasePool
from candidate_filter import summarize_candidates
from candidate_source import (
    CandidateSource, GeminiCandidateSource, SerpApiCandidateSource,
    StaticCandidateSource,
)
from config import Settings, configure_logging, get_settings
from errors import NotFoundError, ShoppingAssistantError
from models import (
    CommentAnalysisRequest, HealthResponse, ProductCreate, ProductFilters,
    ProductUpdate, Recommendation, RecommendationRequest, ReviewAggregate,
    SearchRequest, StrategyType,
)
from product_search import ProductSearchService
from recommendation_engine import RecommendationEngine
from repository import InMemoryRepository, ProductRepository
from review_analysis import InMemoryReviewAggregateStore
from sample_data import sample_products, sample_review_aggregates
from strategy_scorer import STRATEGY_WEIGHTS, BrandReputationTable

logger = logging.getLogger(__name__)


# ============================================================
# Application State (shared singletons)
# ============================================================

class AppState:
    """Holds all shared service instances."""
    settings: Settings
    repo: ProductRepository
    reviews: InMemoryReviewAggregateStore
    search: ProductSearchService
    recommender: RecommendationEngine
    pool: Optional[DatabasePool] = None
    start_time: float
    request_count: int = 0

    def __init__(self):
        self.start_time = time.monotonic()
        self.request_count = 0
        self.pool = None


_state = AppState()


# ============================================================
# Lifespan: Startup / Shutdown
# ============================================================

def build_candidate_source(settings: Settings) -> CandidateSource:
    if settings.candidate_source == "serpapi":
        return SerpApiCandidateSource(
            api_key=settings.serpapi_api_key,
            base_url=settings.serpapi_base_url,
            num_results=settings.serpapi_num_results,
            timeout=settings.http_timeout_seconds,
        )
    if settings.candidate_source == "static":
        return StaticCandidateSource([
            p.model_dump(by_alias=True, mode="json", exclude={"id", "created_at", "updated_at"})
            for p in sample_products()
        ])
    return GeminiCandidateSource(
        api_key=settings.gemini_api_key,
        model_name=settings.gemini_model,
        fallback_models=settings.gemini_fallback_model_list,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


def build_realtime_source(settings: Settings) -> Optional[CandidateSource]:
    if not settings.serpapi_api_key:
        return None
    return SerpApiCandidateSource(
        api_key=settings.serpapi_api_key,
        base_url=settings.serpapi_base_url,
        num_results=settings.serpapi_num_results,
        timeout=settings.http_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting Shopping Assistant (%s)...", settings.app_env)

    _state.settings = settings
    _state.start_time = time.monotonic()
    _state.request_count = 0

    # --- Repository ---
    if settings.repository_backend == "postgres":
        pool = DatabasePool(
            settings.asyncpg_dsn,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
        )
        await pool.initialize()
        _state.pool = pool
        _state.repo = AsyncPGProductRepository(pool)
    else:
        _state.pool = None
        _state.repo = InMemoryRepository(sample_products())

    # --- Review aggregates ---
    _state.reviews = InMemoryReviewAggregateStore(sample_review_aggregates())

    # --- Search ---
    source = build_candidate_source(settings)
    _state.search = ProductSearchService(
        source=source,
        repo=_state.repo,
        realtime_source=build_realtime_source(settings),
        fallback=settings.candidate_fallback,
        store_delay=settings.store_delay_seconds,
    )

    # --- Recommendation ---
    _state.recommender = RecommendationEngine(
        products=_state.repo,
        reviews=_state.reviews,
        brands=BrandReputationTable.from_overrides(
            settings.brand_reputation, default=settings.unknown_brand_score),
        retries=settings.resolution_retries,
        timeout=settings.resolution_timeout_seconds,
    )

    logger.info("System ready. Repository=%s, candidate source=%s",
                settings.repository_backend, source.name)
    yield

    # Shutdown
    logger.info("Shutting down Shopping Assistant...")
    if _state.pool is not None:
        await _state.pool.close()


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="Shopping Assistant API",
    description="Strategy-driven product discovery and recommendation.",
    version=get_settings().version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Middleware: Request Counting & Timing
# ============================================================

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.monotonic()
    _state.request_count += 1
    response = await call_next(request)
    elapsed = int((time.monotonic() - start) * 1000)
    response.headers["X-Response-Time-Ms"] = str(elapsed)
    return response


# ============================================================
# Error Handling
# ============================================================

@app.exception_handler(ShoppingAssistantError)
async def shopping_assistant_error_handler(request: Request, exc: ShoppingAssistantError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={
        "success": False,
        "error": "Invalid request",
        "code": "INVALID_INPUT",
        "details": details,
    })


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={
        "success": False,
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
    })


def _dump(model: Any) -> Any:
    return model.model_dump(by_alias=True, mode="json")


# ============================================================
# 1. POST /api/recommendations/generate
# ============================================================

@app.post(
    "/api/recommendations/generate",
    response_model=list[Recommendation],
    tags=["Recommendations"],
)
async def generate_recommendations(request: RecommendationRequest):
    """Rank the given product ids under the chosen shopping strategy."""
    recommendations = await _state.recommender.rank(
        request.products, request.strategy, request.user_preferences)
    logger.info("[recommend] strategy=%s requested=%d returned=%d",
                request.strategy.type.value, len(request.products), len(recommendations))
    return recommendations


# ============================================================
# 2-3. POST /api/search, /api/search-only
# ============================================================

async def _run_search(request: SearchRequest, store: bool) -> dict:
    found, stored = await _state.search.search_and_store(
        request.customer_input, request.strategy, store_results=store)
    total = len(found.candidates)
    if store:
        message = f"Found {total} products and stored {stored.stored} in database"
    else:
        message = f"Found {total} products"
    return {
        "success": True,
        "data": {
            "products": [_dump(c) for c in found.candidates],
            "stored": stored.stored,
            "errors": stored.errors,
            "totalFound": total,
            "strategy": request.strategy.type.value,
            "provenance": found.provenance,
            "fallbackUsed": found.fallback_used,
            "summary": summarize_candidates(found.candidates, found.metadata),
        },
        "message": message,
    }


@app.post("/api/search", tags=["Search"])
async def search_products(request: SearchRequest):
    """Discover candidates for a free-text request and optionally store them."""
    return await _run_search(request, store=request.store_results)


@app.post("/api/search-only", tags=["Search"])
async def search_products_only(request: SearchRequest):
    return await _run_search(request, store=False)


# ============================================================
# 4. GET /api/strategies, /api/examples
# ============================================================

STRATEGY_INFO: dict[StrategyType, dict[str, Any]] = {
    StrategyType.FANCY: {
        "name": "Fancy",
        "description": "Prioritizes premium products with excellent design and brand reputation",
        "characteristics": [
            "Focuses on luxury and premium brands",
            "Emphasizes high-quality materials and craftsmanship",
            "Prioritizes latest technology and features",
            "Values brand reputation and prestige",
        ],
        "examplePrompts": [
            "Find me the most premium smartphone",
            "I want the best quality laptop money can buy",
            "Show me luxury headphones with excellent design",
        ],
    },
    StrategyType.COST_EFFECTIVE: {
        "name": "Cost-Effective",
        "description": "Balances price and quality for the best value-for-money products",
        "characteristics": [
            "Optimizes price-to-performance ratio",
            "Looks for reliable mid-range options",
            "Considers long-term value and durability",
            "Balances features with affordability",
        ],
        "examplePrompts": [
            "Find me a good value smartphone under $500",
            "Best laptop for the money",
            "Affordable headphones with decent quality",
        ],
    },
    StrategyType.PRICE_PRIORITY: {
        "name": "Price Priority",
        "description": "Focuses on the most affordable options while maintaining basic quality",
        "characteristics": [
            "Prioritizes lowest price options",
            "Accepts basic functionality over premium features",
            "Focuses on essential needs only",
            "Minimizes cost while maintaining usability",
        ],
        "examplePrompts": [
            "Cheapest smartphone that works well",
            "Most affordable laptop for basic tasks",
            "Budget headphones under $50",
        ],
    },
}


@app.get("/api/strategies", tags=["Recommendations"])
async def list_strategies():
    """List the shopping strategies with their scoring weights."""
    strategies = []
    for strategy_type, info in STRATEGY_INFO.items():
        strategies.append({
            "type": strategy_type.value,
            **info,
            "weights": asdict(STRATEGY_WEIGHTS[strategy_type]),
        })
    return {"success": True, "data": strategies, "message": "Available shopping strategies"}


STRATEGY_EXAMPLES: dict[StrategyType, list[dict[str, str]]] = {
    StrategyType.FANCY: [
        {"query": "Premium iPhone with best camera and design",
         "expected": "iPhone 15 Pro Max or similar flagship"},
        {"query": "Luxury smartwatch with premium materials",
         "expected": "Apple Watch Ultra or high-end Garmin"},
        {"query": "High-end gaming laptop with top specs",
         "expected": "Alienware, Razer Blade, or similar premium gaming laptop"},
    ],
    StrategyType.COST_EFFECTIVE: [
        {"query": "Good smartphone under $500 with decent camera",
         "expected": "Google Pixel 7a, Samsung Galaxy A54"},
        {"query": "Reliable laptop for work under $800",
         "expected": "ThinkPad E series, HP Pavilion"},
        {"query": "Quality wireless headphones under $150",
         "expected": "Sony WH-CH720N, Bose QC35"},
    ],
    StrategyType.PRICE_PRIORITY: [
        {"query": "Cheapest smartphone that can make calls and text",
         "expected": "Basic Android phone under $100"},
        {"query": "Most affordable laptop for web browsing",
         "expected": "Chromebook or basic Windows laptop under $300"},
        {"query": "Budget headphones under $30",
         "expected": "Basic wired or wireless headphones"},
    ],
}


@app.get("/api/examples", tags=["Search"])
async def list_examples():
    """Example search queries per strategy, with the kind of result to expect."""
    data = {s.value: examples for s, examples in STRATEGY_EXAMPLES.items()}
    return {"success": True, "data": data, "message": "Example search queries by strategy"}


# ============================================================
# 5-7. Product Catalog
# ============================================================

def _page_size(limit: Optional[int]) -> int:
    settings = _state.settings
    if limit is None:
        return settings.default_page_size
    return max(1, min(limit, settings.max_page_size))


def _pagination(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


@app.get("/api/products", tags=["Products"])
async def list_products(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    brand: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0, allow_inf_nan=False),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0, allow_inf_nan=False),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5, allow_inf_nan=False),
    source_platform: Optional[str] = Query(None, alias="sourcePlatform"),
    order_by: str = Query("created_at", alias="orderBy"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """List catalog products with filters and pagination."""
    size = _page_size(limit)
    filters = ProductFilters(
        brand=brand, category=category, min_price=min_price, max_price=max_price,
        min_rating=min_rating, source_platform=source_platform,
    )
    products, total = await _state.repo.list_products(
        filters, limit=size, offset=(page - 1) * size,
        order_by=order_by, ascending=order == "asc",
    )
    return {
        "success": True,
        "data": [_dump(p) for p in products],
        "pagination": _pagination(page, size, total),
    }


@app.get("/api/products/search", tags=["Products"])
async def search_catalog(
    query: str = Query(...),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
):
    size = _page_size(limit)
    products, total = await _state.repo.search_products(
        query, limit=size, offset=(page - 1) * size)
    return {
        "success": True,
        "data": [_dump(p) for p in products],
        "pagination": _pagination(page, size, total),
    }


@app.get("/api/products/{product_id}", tags=["Products"])
async def get_product(product_id: str):
    product = await _state.repo.get_product(product_id)
    if product is None:
        raise NotFoundError(f"Product not found: {product_id}")
    return {"success": True, "data": _dump(product)}


@app.post("/api/products", status_code=201, tags=["Products"])
async def create_product(data: ProductCreate):
    product = await _state.repo.create_product(data)
    return {"success": True, "data": _dump(product), "message": "Product created successfully"}


@app.put("/api/products/{product_id}", tags=["Products"])
async def update_product(product_id: str, updates: ProductUpdate):
    product = await _state.repo.update_product(product_id, updates)
    return {"success": True, "data": _dump(product), "message": "Product updated successfully"}


@app.delete("/api/products/{product_id}", tags=["Products"])
async def delete_product(product_id: str):
    if not await _state.repo.delete_product(product_id):
        raise NotFoundError(f"Product not found: {product_id}")
    return {"success": True, "message": "Product deleted successfully"}


# ============================================================
# 8-9. Comment Analysis
# ============================================================

@app.get(
    "/api/comments/analysis/{product_id}",
    response_model=ReviewAggregate,
    tags=["Comments"],
)
async def get_comment_analysis(product_id: str):
    aggregate = await _state.reviews.get_review_aggregate(product_id)
    if aggregate is None:
        raise NotFoundError("Comment analysis not found")
    return aggregate


@app.post(
    "/api/comments/analyze/{product_id}",
    response_model=ReviewAggregate,
    tags=["Comments"],
)
async def analyze_comments(product_id: str, request: CommentAnalysisRequest):
    return await _state.reviews.analyze_comments(product_id, request.comments)


# ============================================================
# 10. GET /health
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """System health check."""
    uptime = int(time.monotonic() - _state.start_time)

    components = {
        "repository": await _state.repo.health_check(),
        "review_aggregates": await _state.reviews.health_check(),
        "candidate_source": {
            "status": "healthy",
            "provider": _state.search.source.name,
            "realtime": _state.search.realtime_source is not None,
        },
        "recommendation_engine": {"status": "healthy"},
    }
    healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        components=components,
        version=_state.settings.version,
        uptime_seconds=uptime,
    )


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(app, host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())
