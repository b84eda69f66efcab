# services/catalog.py
"""
Row-fetch layer over the collaborator store.

Two backends answer the same questions:
  - PostgresCatalog: our own Postgres via an asyncpg pool.
  - SupabaseCatalog: the hosted PostgREST table API via httpx.

Both return typed records (services.models) and turn any driver/transport
failure into DataUnavailable. Neither retries; callers decide what to do.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
import httpx

from services.errors import DataUnavailable
from services.models import (
    Product,
    ProductRow,
    Store,
    product_from_mapping,
    product_row_from_mapping,
    store_from_mapping,
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS products (
  id        SERIAL PRIMARY KEY,
  name      TEXT NOT NULL,
  brand     TEXT,
  category  TEXT,
  image_url TEXT
);
CREATE TABLE IF NOT EXISTS stores (
  id        SERIAL PRIMARY KEY,
  name      TEXT NOT NULL,
  latitude  DOUBLE PRECISION NOT NULL,
  longitude DOUBLE PRECISION NOT NULL,
  address   TEXT
);
CREATE TABLE IF NOT EXISTS stock (
  product_id INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
  store_id   INTEGER NOT NULL REFERENCES stores(id) ON DELETE CASCADE,
  quantity   INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
  PRIMARY KEY (product_id, store_id)
);
CREATE INDEX IF NOT EXISTS stock_store_idx ON stock (store_id);
"""


class Catalog:
    """Interface shared by the backends (and by the in-memory fake in tests)."""

    async def search_products(self, term: str, limit: int) -> List[ProductRow]:
        """Rows whose name, brand or category contains term (case-insensitive), at most limit."""
        raise NotImplementedError

    async def products_by_category(self, category: str) -> List[Product]:
        raise NotImplementedError

    async def category_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        """(category, image_url) for every product, in id order."""
        raise NotImplementedError

    async def brand_logo_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        """(brand, image_url) for products that have an image, ordered by brand."""
        raise NotImplementedError

    async def fetch_stores(self) -> List[Store]:
        raise NotImplementedError

    async def stock_for_product(self, product_id: int) -> Dict[int, int]:
        """{store_id: quantity} for one product. Stores without a row are simply absent."""
        raise NotImplementedError

    async def ensure_schema(self) -> None:
        return None

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Postgres (asyncpg)
# ---------------------------------------------------------------------------

SQL_SEARCH = """
SELECT
  p.id,
  p.name,
  COALESCE(p.brand, '')    AS brand,
  COALESCE(p.category, '') AS category,
  p.image_url,
  COALESCE(array_agg(s.quantity) FILTER (WHERE s.quantity IS NOT NULL), '{}') AS quantities
FROM products p
LEFT JOIN stock s ON s.product_id = p.id
WHERE p.name ILIKE $1
   OR p.brand ILIKE $1
   OR p.category ILIKE $1
GROUP BY p.id
ORDER BY SUM(s.quantity) DESC NULLS LAST, p.id
LIMIT $2
"""

_PG_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PostgresCatalog(Catalog):
    def __init__(self, pool: asyncpg.pool.Pool):
        self.pool = pool

    async def _fetch(self, sql: str, *args: Any) -> List[asyncpg.Record]:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(sql, *args)
        except _PG_ERRORS as e:
            raise DataUnavailable(f"postgres: {type(e).__name__}: {e}") from e

    async def search_products(self, term: str, limit: int) -> List[ProductRow]:
        rows = await self._fetch(SQL_SEARCH, f"%{term}%", int(limit))
        return [product_row_from_mapping(r) for r in rows]

    async def products_by_category(self, category: str) -> List[Product]:
        rows = await self._fetch(
            """
            SELECT id, name, COALESCE(brand, '') AS brand, category, image_url
            FROM products
            WHERE category = $1
            ORDER BY id
            """,
            category,
        )
        return [p for p in (product_from_mapping(r) for r in rows) if p is not None]

    async def category_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        rows = await self._fetch("SELECT category, image_url FROM products ORDER BY id")
        return [(r["category"], r["image_url"]) for r in rows]

    async def brand_logo_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        rows = await self._fetch(
            "SELECT brand, image_url FROM products WHERE image_url IS NOT NULL ORDER BY brand, id"
        )
        return [(r["brand"], r["image_url"]) for r in rows]

    async def fetch_stores(self) -> List[Store]:
        rows = await self._fetch(
            "SELECT id, name, latitude, longitude, address FROM stores ORDER BY id"
        )
        return [s for s in (store_from_mapping(r) for r in rows) if s is not None]

    async def stock_for_product(self, product_id: int) -> Dict[int, int]:
        rows = await self._fetch(
            "SELECT store_id, quantity FROM stock WHERE product_id = $1",
            int(product_id),
        )
        return {int(r["store_id"]): int(r["quantity"] or 0) for r in rows}

    async def ensure_schema(self) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except _PG_ERRORS as e:
            raise DataUnavailable(f"postgres: {type(e).__name__}: {e}") from e

    async def close(self) -> None:
        await self.pool.close()


# ---------------------------------------------------------------------------
# Supabase / PostgREST (httpx)
# ---------------------------------------------------------------------------

class SupabaseCatalog(Catalog):
    """
    Talks to /rest/v1/<table> with the service key when available.
    Search embeds stock rows (`stock(quantity)`) so quantities come back per product.
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        try:
            resp = await self.client.get(f"/{table}", params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DataUnavailable(f"supabase {table}: {type(e).__name__}: {e}") from e
        if not isinstance(data, list):
            raise DataUnavailable(f"supabase {table}: expected a list, got {type(data).__name__}")
        return data

    async def search_products(self, term: str, limit: int) -> List[ProductRow]:
        rows = await self._select(
            "products",
            {
                "select": "id,name,brand,category,image_url,stock(quantity)",
                "or": f"(name.ilike.*{term}*,brand.ilike.*{term}*,category.ilike.*{term}*)",
                "order": "id",
                "limit": str(int(limit)),
            },
        )
        return [product_row_from_mapping(r) for r in rows]

    async def products_by_category(self, category: str) -> List[Product]:
        rows = await self._select(
            "products",
            {
                "select": "id,name,brand,category,image_url",
                "category": f"eq.{category}",
                "order": "id",
            },
        )
        return [p for p in (product_from_mapping(r) for r in rows) if p is not None]

    async def category_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        rows = await self._select("products", {"select": "category,image_url", "order": "id"})
        return [(r.get("category"), r.get("image_url")) for r in rows]

    async def brand_logo_rows(self) -> List[Tuple[Optional[str], Optional[str]]]:
        rows = await self._select(
            "products",
            {"select": "brand,image_url", "image_url": "not.is.null", "order": "brand,id"},
        )
        return [(r.get("brand"), r.get("image_url")) for r in rows]

    async def fetch_stores(self) -> List[Store]:
        rows = await self._select(
            "stores", {"select": "id,name,latitude,longitude,address", "order": "id"}
        )
        return [s for s in (store_from_mapping(r) for r in rows) if s is not None]

    async def stock_for_product(self, product_id: int) -> Dict[int, int]:
        rows = await self._select(
            "stock",
            {"select": "store_id,quantity", "product_id": f"eq.{int(product_id)}"},
        )
        out: Dict[int, int] = {}
        for r in rows:
            try:
                out[int(r["store_id"])] = int(r.get("quantity") or 0)
            except (KeyError, TypeError, ValueError):
                continue
        return out

    async def close(self) -> None:
        await self.client.aclose()
