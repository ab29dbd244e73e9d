"""
Shopping Assistant — Product Repository
repository.py

Persistence interface for the product catalog, shared input validation,
and an in-memory implementation for tests and local development. The
PostgreSQL implementation lives in asyncpg_repository.py.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Optional

from errors import NotFoundError, ValidationError
from models import (
    NO_LINK, PLACEHOLDER_IMAGE_URL, Product, ProductCreate, ProductFilters,
    ProductUpdate, normalize_url,
)

logger = logging.getLogger(__name__)

# API order_by values → Product attribute / column name
ORDER_BY_COLUMNS: dict[str, str] = {
    'created_at': 'created_at',
    'createdAt': 'created_at',
    'price': 'price',
    'rating': 'rating',
    'name': 'name',
    'review_count': 'review_count',
    'reviewCount': 'review_count',
}

REQUIRED_CREATE_FIELDS = (
    'name', 'brand', 'category', 'image_url', 'product_url', 'source_platform',
)


# ============================================================
# Validation
# ============================================================

def _range_errors(
    price: Optional[float], rating: Optional[float], review_count: Optional[int],
) -> list[str]:
    errors = []
    if price is not None and price < 0:
        errors.append("Price must be a non-negative number")
    if rating is not None and not 0 <= rating <= 5:
        errors.append("Rating must be a number between 0 and 5")
    if review_count is not None and review_count < 0:
        errors.append("Review count must be a non-negative number")
    return errors


def _normalized_urls(fields: dict) -> dict:
    """Malformed image links become the placeholder image; product links become ``#``."""
    fixed = {}
    if fields.get('image_url') is not None:
        fixed['image_url'] = normalize_url(fields['image_url'], PLACEHOLDER_IMAGE_URL)
    if fields.get('product_url') is not None:
        fixed['product_url'] = normalize_url(fields['product_url'], NO_LINK)
    return fixed


def validate_product_create(data: ProductCreate) -> ProductCreate:
    """Raise on missing fields or bad ranges; return ``data`` with normalized URLs."""
    missing = [
        f for f in REQUIRED_CREATE_FIELDS
        if not str(getattr(data, f) or '').strip()
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}", details=missing)

    errors = _range_errors(data.price, data.rating, data.review_count)
    if errors:
        raise ValidationError(errors[0], details=errors)
    return data.model_copy(update=_normalized_urls(data.model_dump()))


def validate_product_update(updates: ProductUpdate) -> dict:
    """Return the explicitly-set fields; raise on an empty or invalid update."""
    changes = updates.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise ValidationError("No update data provided")

    errors = _range_errors(
        changes.get('price'), changes.get('rating'), changes.get('review_count'))
    for name in ('name', 'brand', 'category', 'source_platform'):
        if name in changes and not str(changes[name]).strip():
            errors.append(f"{name} must not be empty")
    if errors:
        raise ValidationError(errors[0], details=errors)
    changes.update(_normalized_urls(changes))
    return changes


def resolve_order_by(order_by: Optional[str]) -> str:
    if not order_by:
        return 'created_at'
    column = ORDER_BY_COLUMNS.get(order_by)
    if column is None:
        allowed = sorted({v for v in ORDER_BY_COLUMNS.values()})
        raise ValidationError(
            f"Invalid orderBy: {order_by}", details=[f"allowed: {', '.join(allowed)}"])
    return column


# ============================================================
# Repository Interface
# ============================================================

class ProductRepository:
    """
    Catalog access. Implementations are swappable (in-memory, asyncpg).
    ``get_product`` doubles as the recommendation engine's product resolver.
    """

    async def get_product(self, product_id: str) -> Optional[Product]:
        raise NotImplementedError

    async def create_product(self, data: ProductCreate) -> Product:
        raise NotImplementedError

    async def update_product(self, product_id: str, updates: ProductUpdate) -> Product:
        raise NotImplementedError

    async def delete_product(self, product_id: str) -> bool:
        raise NotImplementedError

    async def list_products(
        self,
        filters: Optional[ProductFilters] = None,
        limit: int = 50,
        offset: int = 0,
        order_by: Optional[str] = 'created_at',
        ascending: bool = False,
    ) -> tuple[list[Product], int]:
        raise NotImplementedError

    async def search_products(
        self, query: str, limit: int = 50, offset: int = 0,
    ) -> tuple[list[Product], int]:
        raise NotImplementedError

    async def health_check(self) -> dict:
        return {"status": "healthy"}


# ============================================================
# In-Memory Repository (for testing / local dev)
# ============================================================

def _matches(product: Product, filters: ProductFilters) -> bool:
    if filters.brand and product.brand != filters.brand:
        return False
    if filters.category and product.category != filters.category:
        return False
    if filters.min_price is not None and product.price < filters.min_price:
        return False
    if filters.max_price is not None and product.price > filters.max_price:
        return False
    if filters.min_rating is not None and (
            product.rating is None or product.rating < filters.min_rating):
        return False
    if filters.source_platform and product.source_platform != filters.source_platform:
        return False
    return True


class InMemoryRepository(ProductRepository):
    """In-memory implementation for testing without a database."""

    def __init__(self, products: Optional[list[Product]] = None):
        self.products: dict[str, Product] = {}
        for p in products or []:
            self.products[p.id] = p

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def create_product(self, data: ProductCreate) -> Product:
        data = validate_product_create(data)
        product = Product(**data.model_dump())
        self.products[product.id] = product
        logger.info("Created product %s (%s)", product.name, product.id)
        return product

    async def update_product(self, product_id: str, updates: ProductUpdate) -> Product:
        changes = validate_product_update(updates)
        existing = self.products.get(product_id)
        if existing is None:
            raise NotFoundError(f"Product not found: {product_id}")
        updated = existing.model_copy(update={
            **changes, 'updated_at': datetime.now(timezone.utc),
        })
        self.products[product_id] = updated
        return updated

    async def delete_product(self, product_id: str) -> bool:
        return self.products.pop(product_id, None) is not None

    async def list_products(
        self,
        filters=None,
        limit=50,
        offset=0,
        order_by='created_at',
        ascending=False,
    ):
        column = resolve_order_by(order_by)
        filters = filters or ProductFilters()
        matched = [p for p in self.products.values() if _matches(p, filters)]

        # NULL ratings sort as largest, matching PostgreSQL's default
        def sort_key(p: Product):
            value = getattr(p, column)
            return (value is None, value if value is not None else 0)

        matched.sort(key=sort_key, reverse=not ascending)
        return matched[offset:offset + limit], len(matched)

    async def search_products(self, query, limit=50, offset=0):
        needle = (query or '').strip().lower()
        if not needle:
            raise ValidationError("Search query is required")
        matched = [
            p for p in self.products.values()
            if needle in p.name.lower()
            or needle in p.brand.lower()
            or needle in p.category.lower()
        ]
        matched.sort(key=lambda p: p.created_at, reverse=True)
        return matched[offset:offset + limit], len(matched)

    async def health_check(self) -> dict:
        return {"status": "healthy", "backend": "memory", "products": len(self.products)}
