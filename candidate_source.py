"""
Shopping Assistant — Candidate Sources
candidate_source.py

Discovery backends that turn a free-text query into raw (unfiltered)
candidate dicts:

  GeminiCandidateSource   — generative model prompted for a JSON array
  SerpApiCandidateSource  — Google Shopping results via SerpAPI (real-time)
  StaticCandidateSource   — fixed list (fixtures, tests, offline demo)

Every source exposes ``async find_candidates(query, strategy=None)`` and
raises ``CandidateSourceFailure`` on upstream or parse errors. Fallback
policy lives in product_search.py, not here.
"""
from __future__ import annotations
import json
import logging
import math
import re
from typing import Any, Optional

import google.generativeai as genai
import httpx
from google.api_core import exceptions as google_exceptions

from errors import CandidateSourceFailure
from models import Strategy, StrategyType

logger = logging.getLogger(__name__)


# ============================================================
# Prompt
# ============================================================

STRATEGY_GUIDELINES = """Strategy Guidelines:
- **Fancy**: Focus on premium brands, high-quality materials, luxury features, latest technology
- **Cost-effective**: Balance price and quality, good value for money, reliable brands
- **Price-priority**: Lowest price options, basic functionality, acceptable quality"""

PRODUCT_SHAPE = """{
  "name": "Product Name",
  "price": 999.99,
  "brand": "Brand Name",
  "category": "Category",
  "imageUrl": "https://example.com/image.jpg",
  "productUrl": "https://example.com/product",
  "rating": 4.5,
  "reviewCount": 100,
  "sourcePlatform": "Amazon/BestBuy/etc",
  "description": "Brief product description",
  "features": ["feature1", "feature2", "feature3"],
  "specifications": {
    "key": "value"
  }
}"""


def build_search_prompt(query: str, strategy: Optional[Strategy]) -> str:
    lines = [
        "You are a product search assistant. Based on the customer's request "
        "and their shopping strategy, find the best products.",
        "",
        f'Customer Request: "{query}"',
        "",
    ]
    if strategy is not None:
        lines.append(f"Shopping Strategy: {strategy.type.value}")
        if strategy.max_price is not None:
            lines.append(f"Maximum Price: ${strategy.max_price:g}")
        if strategy.min_price is not None:
            lines.append(f"Minimum Price: ${strategy.min_price:g}")
        if strategy.preferred_brands:
            lines.append(f"Preferred Brands: {', '.join(strategy.preferred_brands)}")
        if strategy.excluded_brands:
            lines.append(f"Excluded Brands: {', '.join(strategy.excluded_brands)}")
        if strategy.min_rating is not None:
            lines.append(f"Minimum Rating: {strategy.min_rating:g}/5")
    lines += [
        "",
        "Please provide a JSON array of 5-10 products that match this criteria. "
        "Each product should include:",
        PRODUCT_SHAPE,
        "",
        STRATEGY_GUIDELINES,
        "",
        "Return only the JSON array, no additional text.",
    ]
    return "\n".join(lines)


# ============================================================
# Tolerant JSON Parsing
# ============================================================

def _balanced_array_end(text: str, start: int) -> Optional[int]:
    """Index just past the ``]`` that closes the ``[`` at ``start``."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '[':
            depth += 1
        elif ch == ']':
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_array(text: str) -> Optional[list]:
    """First balanced ``[...]`` substring of ``text`` that parses as a JSON array."""
    for match in re.finditer(r'\[', text):
        end = _balanced_array_end(text, match.start())
        if end is None:
            continue
        try:
            value = json.loads(text[match.start():end])
        except json.JSONDecodeError:
            continue
        if isinstance(value, list):
            return value
    return None


def parse_candidate_payload(text: Any) -> list:
    """Strict parse first, then bracket extraction, then fail."""
    if not isinstance(text, str) or not text.strip():
        raise CandidateSourceFailure("Empty response from candidate source")
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        value = extract_json_array(text)
        if value is None:
            raise CandidateSourceFailure(
                "Invalid JSON response from candidate source",
                details=[text[:200]],
            ) from None
    if not isinstance(value, list):
        logger.warning("Candidate payload is %s, not an array; ignoring",
                       type(value).__name__)
        return []
    return value


# ============================================================
# Sources
# ============================================================

class CandidateSource:
    """Interface for discovery backends."""
    name = "base"

    async def find_candidates(
        self, query: str, strategy: Optional[Strategy] = None,
    ) -> list[dict]:
        raise NotImplementedError


class StaticCandidateSource(CandidateSource):
    name = "static"

    def __init__(self, candidates: Optional[list[dict]] = None):
        self.candidates = list(candidates or [])

    async def find_candidates(self, query, strategy=None):
        return [dict(c) for c in self.candidates]


def _is_model_not_found(err: Exception) -> bool:
    if isinstance(err, google_exceptions.NotFound):
        return True
    msg = str(err)
    return bool(re.search(r'not found|404|supported for generateContent', msg, re.I))


class GeminiCandidateSource(CandidateSource):
    """
    Prompts a Gemini model for a JSON array of products.

    When the configured model is reported missing, each of
    ``fallback_models`` is tried in turn before giving up.
    """
    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "gemini-1.5-flash",
        fallback_models: Optional[list[str]] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.fallback_models = [m for m in (fallback_models or []) if m != model_name]
        self.generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if api_key:
            genai.configure(api_key=api_key)
        else:
            logger.warning("GEMINI_API_KEY not configured; Gemini searches will fail over")

    def _model(self, name: str) -> genai.GenerativeModel:
        return genai.GenerativeModel(
            model_name=name, generation_config=self.generation_config)

    async def _generate(self, prompt: str) -> str:
        try:
            response = await self._model(self.model_name).generate_content_async(prompt)
            return response.text
        except Exception as err:
            if not _is_model_not_found(err):
                raise
            logger.warning("Model %s unavailable (%s); trying fallbacks",
                           self.model_name, err)
            for name in self.fallback_models:
                try:
                    response = await self._model(name).generate_content_async(prompt)
                    logger.info("Using fallback model %s", name)
                    return response.text
                except Exception as fallback_err:
                    logger.warning("Fallback model %s failed: %s", name, fallback_err)
            raise

    async def find_candidates(self, query, strategy=None):
        if not self.api_key:
            raise CandidateSourceFailure("Gemini API key is not configured")

        prompt = build_search_prompt(query, strategy)
        logger.info("Gemini search: %r (%s)", query,
                    strategy.type.value if strategy else "no strategy")
        try:
            text = await self._generate(prompt)
        except Exception as e:
            raise CandidateSourceFailure(f"Gemini request failed: {e}") from e

        logger.debug("Gemini response: %s...", str(text)[:200])
        return parse_candidate_payload(text)


def parse_price(value: Any) -> float:
    """``"$1,299.99"`` → 1299.99; anything unparseable → 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else 0.0
    if not isinstance(value, str):
        return 0.0
    cleaned = re.sub(r'[^0-9.]', '', value)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


class SerpApiCandidateSource(CandidateSource):
    """Real-time Google Shopping results through SerpAPI."""
    name = "serpapi"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://serpapi.com/search.json",
        num_results: int = 10,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.num_results = num_results
        self.timeout = timeout
        self._transport = transport

    async def find_candidates(self, query, strategy=None):
        if not self.api_key:
            logger.warning("SERPAPI_API_KEY not configured; skipping real-time search")
            return []

        params = {
            "engine": "google_shopping",
            "q": query,
            "api_key": self.api_key,
            "num": str(self.num_results),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CandidateSourceFailure(f"SerpAPI request failed: {e}") from e

        if not isinstance(payload, dict):
            raise CandidateSourceFailure("Invalid SerpAPI response payload")
        if payload.get("error"):
            raise CandidateSourceFailure(f"SerpAPI error: {payload['error']}")

        rows = payload.get("shopping_results")
        rows = rows if isinstance(rows, list) else []
        candidates = [self._from_row(r) for r in rows if isinstance(r, dict)]
        return [c for c in candidates if c["price"] > 0]

    @staticmethod
    def _from_row(row: dict) -> dict:
        photos = row.get("product_photos") or []
        rating = row.get("rating")
        reviews = row.get("reviews")
        return {
            "name": row.get("title") or row.get("product_title") or "Unknown",
            "price": parse_price(row.get("extracted_price") or row.get("price")),
            "brand": row.get("brand") or row.get("source") or "Unknown",
            "category": row.get("product_category") or "Unknown",
            "imageUrl": row.get("thumbnail") or (photos[0] if photos else None),
            "productUrl": row.get("link") or row.get("product_link") or "#",
            "rating": rating if isinstance(rating, (int, float)) else (row.get("reviews_rating") or 0),
            "reviewCount": reviews if isinstance(reviews, int) else (row.get("reviews_count") or 0),
            "sourcePlatform": "Google Shopping",
            "description": row.get("description") or "",
            "features": [],
            "specifications": {},
        }


# ============================================================
# Mock Candidates
# ============================================================

MOCK_BRANDS = ['Acme', 'Contoso', 'Globex', 'Umbrella', 'Initech']
MOCK_CATEGORIES = ['Electronics', 'Computers', 'Audio', 'Mobile', 'Accessories']
MOCK_PLATFORM = "mock"
MOCK_COUNT = 6

# strategy → (base price, price step, rating)
MOCK_PRICING: dict[StrategyType, tuple[float, float, float]] = {
    StrategyType.PRICE_PRIORITY: (29, 5, 3.8),
    StrategyType.COST_EFFECTIVE: (99, 20, 4.0),
    StrategyType.FANCY: (299, 50, 4.5),
}


def generate_mock_candidates(query: str, strategy: Optional[Strategy]) -> list[dict]:
    """Placeholder results tagged ``sourcePlatform="mock"``."""
    strategy_type = strategy.type if strategy else StrategyType.FANCY
    base, step, rating = MOCK_PRICING[strategy_type]
    return [
        {
            "name": f"{query} - Model {i + 1}",
            "price": round(base + i * step, 2),
            "brand": MOCK_BRANDS[i % len(MOCK_BRANDS)],
            "category": MOCK_CATEGORIES[i % len(MOCK_CATEGORIES)],
            "imageUrl": "https://via.placeholder.com/300x200",
            "productUrl": "#",
            "rating": rating,
            "reviewCount": 50 + i * 10,
            "sourcePlatform": MOCK_PLATFORM,
            "description": f'Placeholder result for "{query}" aligned to '
                           f'{strategy_type.value} strategy',
            "features": ["Feature A", "Feature B", "Feature C"],
            "specifications": {"weight": f"{0.5 + i * 0.1:.1f}kg"},
        }
        for i in range(MOCK_COUNT)
    ]
