"""
asyncpg_repository.py — PostgreSQL product catalog.

Implements the ProductRepository interface over an asyncpg connection pool
and the ``products`` table from migrations/001_products.sql.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from errors import NotFoundError, PersistenceFailure, ValidationError
from models import Product, ProductCreate, ProductFilters, ProductUpdate
from repository import (
    ProductRepository, resolve_order_by, validate_product_create,
    validate_product_update,
)

logger = logging.getLogger(__name__)

# ── Connection Pool Manager ──────────────────────────────────────────────────

class DatabasePool:
    """Manages asyncpg connection pool lifecycle."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        self._pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=30,
        )
        logger.info(
            "Database pool initialized (min=%d, max=%d)", self.min_size, self.max_size
        )

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self):
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            logger.info("Database pool closed")


# ── Row Mapping ──────────────────────────────────────────────────────────────

PRODUCT_COLUMNS = (
    "id, name, price, brand, category, image_url, product_url, rating, "
    "review_count, source_platform, created_at, updated_at"
)


def row_to_product(row: Any) -> Product:
    data = dict(row)
    return Product(
        id=str(data["id"]),
        name=data["name"],
        price=float(data["price"]),
        brand=data["brand"],
        category=data["category"],
        image_url=data["image_url"],
        product_url=data["product_url"],
        rating=float(data["rating"]) if data.get("rating") is not None else None,
        review_count=data.get("review_count") or 0,
        source_platform=data["source_platform"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


def _as_uuid(product_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(product_id))
    except ValueError:
        return None


# ── Product Repository ───────────────────────────────────────────────────────

class AsyncPGProductRepository(ProductRepository):
    """
    PostgreSQL-backed catalog.

    Ids that are not UUIDs resolve to "not found" rather than a query
    error. Driver errors surface as PersistenceFailure.
    """

    def __init__(self, db: DatabasePool):
        self.db = db

    async def get_product(self, product_id: str) -> Optional[Product]:
        pid = _as_uuid(product_id)
        if pid is None:
            return None
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id = $1", pid,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceFailure(f"Database error: {e}") from e
        return row_to_product(row) if row else None

    async def create_product(self, data: ProductCreate) -> Product:
        data = validate_product_create(data)
        now = datetime.now(timezone.utc)
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO products (
                        id, name, price, brand, category, image_url, product_url,
                        rating, review_count, source_platform, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $11)
                    RETURNING {PRODUCT_COLUMNS}
                    """,
                    uuid.uuid4(), data.name, data.price, data.brand, data.category,
                    data.image_url, data.product_url, data.rating,
                    data.review_count or 0, data.source_platform, now,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceFailure(f"Database error: {e}") from e
        product = row_to_product(row)
        logger.info("Created product %s (%s)", product.name, product.id)
        return product

    async def update_product(self, product_id: str, updates: ProductUpdate) -> Product:
        changes = validate_product_update(updates)
        pid = _as_uuid(product_id)
        if pid is None:
            raise NotFoundError(f"Product not found: {product_id}")

        sets, vals, idx = [], [], 1
        for k, v in changes.items():
            sets.append(f"{k} = ${idx}")
            vals.append(v)
            idx += 1

        sets.append(f"updated_at = ${idx}")
        vals.append(datetime.now(timezone.utc))
        idx += 1
        vals.append(pid)

        query = (
            f"UPDATE products SET {', '.join(sets)} WHERE id = ${idx} "
            f"RETURNING {PRODUCT_COLUMNS}"
        )
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow(query, *vals)
        except asyncpg.PostgresError as e:
            raise PersistenceFailure(f"Database error: {e}") from e
        if row is None:
            raise NotFoundError(f"Product not found: {product_id}")
        return row_to_product(row)

    async def delete_product(self, product_id: str) -> bool:
        pid = _as_uuid(product_id)
        if pid is None:
            return False
        try:
            async with self.db.acquire() as conn:
                deleted = await conn.fetchval(
                    "DELETE FROM products WHERE id = $1 RETURNING id", pid,
                )
        except asyncpg.PostgresError as e:
            raise PersistenceFailure(f"Database error: {e}") from e
        return deleted is not None

    async def list_products(
        self,
        filters: Optional[ProductFilters] = None,
        limit: int = 50,
        offset: int = 0,
        order_by: Optional[str] = "created_at",
        ascending: bool = False,
    ) -> tuple[list[Product], int]:
        column = resolve_order_by(order_by)
        filters = filters or ProductFilters()
        conditions, vals, idx = [], [], 1

        if filters.brand:
            conditions.append(f"brand = ${idx}")
            vals.append(filters.brand)
            idx += 1

        if filters.category:
            conditions.append(f"category = ${idx}")
            vals.append(filters.category)
            idx += 1

        if filters.min_price is not None:
            conditions.append(f"price >= ${idx}")
            vals.append(filters.min_price)
            idx += 1

        if filters.max_price is not None:
            conditions.append(f"price <= ${idx}")
            vals.append(filters.max_price)
            idx += 1

        if filters.min_rating is not None:
            conditions.append(f"rating >= ${idx}")
            vals.append(filters.min_rating)
            idx += 1

        if filters.source_platform:
            conditions.append(f"source_platform = ${idx}")
            vals.append(filters.source_platform)
            idx += 1

        where = "WHERE " + " AND ".join(conditions) if conditions else ""
        direction = "ASC" if ascending else "DESC"
        return await self._page(where, vals, column, direction, limit, offset)

    async def search_products(
        self, query: str, limit: int = 50, offset: int = 0,
    ) -> tuple[list[Product], int]:
        needle = (query or "").strip()
        if not needle:
            raise ValidationError("Search query is required")
        where = "WHERE name ILIKE $1 OR brand ILIKE $1 OR category ILIKE $1"
        return await self._page(
            where, [f"%{needle}%"], "created_at", "DESC", limit, offset)

    async def _page(
        self, where: str, vals: list, column: str, direction: str,
        limit: int, offset: int,
    ) -> tuple[list[Product], int]:
        # column comes from the order-by whitelist, limit/offset are ints
        query = f"""
            SELECT {PRODUCT_COLUMNS}, COUNT(*) OVER () AS total
            FROM products
            {where}
            ORDER BY {column} {direction}
            LIMIT {int(limit)} OFFSET {int(offset)}
        """
        try:
            async with self.db.acquire() as conn:
                rows = await conn.fetch(query, *vals)
                if rows:
                    total = rows[0]["total"]
                else:
                    total = await conn.fetchval(
                        f"SELECT COUNT(*) FROM products {where}", *vals)
        except asyncpg.PostgresError as e:
            raise PersistenceFailure(f"Database error: {e}") from e
        return [row_to_product(r) for r in rows], int(total or 0)

    # ── Health Check ─────────────────────────────────────────────────────

    async def health_check(self) -> dict:
        try:
            async with self.db.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                pool = self.db.pool
                return {
                    "status": "healthy",
                    "backend": "postgres",
                    "postgres_version": version,
                    "pool_size": pool.get_size(),
                    "pool_free": pool.get_idle_size(),
                }
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
