"""
Shopping Assistant — Product Search Pipeline
product_search.py

query + strategy → candidate source → candidate filter → (optional) store.

A failing source never fails the search: results fall back to the mock
set or to an empty list, and ``SearchResult.provenance`` /
``fallback_used`` say which happened. Storage is per item; one bad row
adds an error string and the rest are still written.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Optional

from candidate_filter import filter_candidates
from candidate_source import CandidateSource, MOCK_PLATFORM, generate_mock_candidates
from errors import CandidateSourceFailure, ShoppingAssistantError, ValidationError
from models import (
    Candidate, ProductCreate, SearchMetadata, SearchResult, StoreResult,
    StoredProduct, Strategy,
)
from repository import ProductRepository

logger = logging.getLogger(__name__)

FALLBACK_MOCK = "mock"
FALLBACK_EMPTY = "empty"


class ProductSearchService:

    def __init__(
        self,
        source: CandidateSource,
        repo: ProductRepository,
        realtime_source: Optional[CandidateSource] = None,
        fallback: str = FALLBACK_MOCK,
        store_delay: float = 0.0,
    ):
        if fallback not in (FALLBACK_MOCK, FALLBACK_EMPTY):
            raise ValueError(f"fallback must be '{FALLBACK_MOCK}' or '{FALLBACK_EMPTY}'")
        self.source = source
        self.repo = repo
        self.realtime_source = realtime_source
        self.fallback = fallback
        self.store_delay = store_delay

    def _pick_source(self, strategy: Strategy) -> CandidateSource:
        if strategy.realtime and self.realtime_source is not None:
            return self.realtime_source
        return self.source

    async def search(self, query: str, strategy: Optional[Strategy]) -> SearchResult:
        if not query or not query.strip():
            raise ValidationError("Customer input is required")
        if strategy is None:
            raise ValidationError("Search strategy is required")

        query = query.strip()
        source = self._pick_source(strategy)
        logger.info("Searching %r with %s strategy via %s",
                    query, strategy.type.value, source.name)

        fallback_used = False
        provenance = source.name
        try:
            raw = await source.find_candidates(query, strategy)
        except CandidateSourceFailure as e:
            fallback_used = True
            if self.fallback == FALLBACK_MOCK:
                logger.warning("Candidate source %s failed (%s); using mock results",
                               source.name, e.message)
                raw = generate_mock_candidates(query, strategy)
                provenance = MOCK_PLATFORM
            else:
                logger.warning("Candidate source %s failed (%s); returning no results",
                               source.name, e.message)
                raw = []
                provenance = FALLBACK_EMPTY

        candidates = filter_candidates(raw, strategy)
        return SearchResult(
            candidates=candidates,
            provenance=provenance,
            fallback_used=fallback_used,
            raw_count=len(raw) if isinstance(raw, list) else 0,
            metadata=SearchMetadata(
                query=query, strategy=strategy.type, source=provenance),
        )

    async def store(
        self, candidates: list[Candidate], metadata: Optional[SearchMetadata] = None,
    ) -> StoreResult:
        """Persist each candidate; stored rows carry ``metadata`` and the candidate's details."""
        result = StoreResult()
        for i, candidate in enumerate(candidates):
            try:
                product = await self.repo.create_product(ProductCreate(
                    name=candidate.name,
                    price=candidate.price,
                    brand=candidate.brand,
                    category=candidate.category,
                    image_url=candidate.image_url,
                    product_url=candidate.product_url,
                    rating=candidate.rating,
                    review_count=candidate.review_count,
                    source_platform=candidate.source_platform,
                ))
            except ShoppingAssistantError as e:
                result.errors.append(f"Failed to store {candidate.name}: {e.message}")
            except Exception as e:
                logger.exception("Unexpected error storing %s", candidate.name)
                result.errors.append(f"Failed to store {candidate.name}: {e}")
            else:
                result.stored += 1
                result.products.append(StoredProduct(
                    **product.model_dump(),
                    description=candidate.description,
                    features=candidate.features,
                    specifications=candidate.specifications,
                    search_metadata=metadata,
                ))

            if self.store_delay and i < len(candidates) - 1:
                await asyncio.sleep(self.store_delay)

        logger.info("Storage complete: %d stored, %d errors",
                    result.stored, len(result.errors))
        return result

    async def search_and_store(
        self, query: str, strategy: Optional[Strategy], store_results: bool = True,
    ) -> tuple[SearchResult, StoreResult]:
        found = await self.search(query, strategy)
        stored = StoreResult()
        if store_results and found.candidates:
            stored = await self.store(found.candidates, found.metadata)
        return found, stored
