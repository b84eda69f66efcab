# tests/conftest.py
import os
import sys

import httpx
import pytest
import pytest_asyncio

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from main import app  # noqa: E402
from services.catalog import Catalog  # noqa: E402
from services.errors import DataUnavailable  # noqa: E402
from services.models import (  # noqa: E402
    as_product_id,
    fold,
    product_from_mapping,
    product_row_from_mapping,
    store_from_mapping,
)
from settings import get_automation, get_catalog  # noqa: E402

ISTANBUL = (41.0082, 28.9784)

STORES = [
    {"id": 1, "name": "BİM Beşiktaş", "latitude": 41.0430, "longitude": 29.0054, "address": "Beşiktaş, İstanbul"},
    {"id": 2, "name": "BİM Kadıköy", "latitude": 40.9917, "longitude": 29.0270, "address": "Kadıköy, İstanbul"},
    {"id": 3, "name": "BİM Şişli", "latitude": 41.0600, "longitude": 28.9872, "address": "Şişli, İstanbul"},
]

PRODUCTS = [
    {"id": 1, "name": "Tencere", "brand": "BİM", "category": "Mutfak", "image_url": None},
    {"id": 2, "name": "Tava", "brand": "BİM", "category": "Mutfak", "image_url": "https://cdn.example/bim.png"},
    {"id": 3, "name": "Mercimek", "brand": "Duru", "category": "Bakliyat", "image_url": "https://cdn.example/duru.png"},
]

STOCK = {(1, 1): 5, (1, 2): 3, (2, 1): 0}


class FakeCatalog(Catalog):
    """
    In-memory Catalog. Substring matching on name, brand and category like the
    real backends, but through fold(), so it is also accent-insensitive where
    ILIKE is not (celik matches Çelik here only).
    """

    def __init__(self, products=(), stores=(), stock=None, fail=False):
        self.products = list(products)
        self.stores = [s for s in (store_from_mapping(m) for m in stores) if s is not None]
        self.stock = dict(stock or {})
        self.fail = fail
        self.calls = []

    def _enter(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail:
            raise DataUnavailable("connection refused by db-host-7:5432")

    async def search_products(self, term, limit):
        self._enter("search_products", term, limit)
        t = fold(term)
        rows = []
        for p in self.products:
            if not any(t in fold(p.get(k)) for k in ("name", "brand", "category")):
                continue
            pid = as_product_id(p.get("id"))
            qs = [q for (ppid, _sid), q in self.stock.items() if pid is not None and ppid == pid]
            rows.append(product_row_from_mapping({**p, "quantities": qs}))
        return rows[:limit]

    async def products_by_category(self, category):
        self._enter("products_by_category", category)
        return [
            p for p in (product_from_mapping(m) for m in self.products)
            if p is not None and p.category == category
        ]

    async def category_rows(self):
        self._enter("category_rows")
        return [(p.get("category"), p.get("image_url")) for p in self.products]

    async def brand_logo_rows(self):
        self._enter("brand_logo_rows")
        rows = [(p.get("brand"), p.get("image_url")) for p in self.products if p.get("image_url")]
        return sorted(rows, key=lambda r: r[0] or "")

    async def fetch_stores(self):
        self._enter("fetch_stores")
        return list(self.stores)

    async def stock_for_product(self, product_id):
        self._enter("stock_for_product", product_id)
        return {sid: q for (pid, sid), q in self.stock.items() if pid == product_id}


@pytest.fixture
def catalog():
    return FakeCatalog(PRODUCTS, STORES, STOCK)


@pytest.fixture
def failing_catalog():
    return FakeCatalog(PRODUCTS, STORES, STOCK, fail=True)


@pytest.fixture
def use_catalog():
    """Install a catalog (and optionally an automation client) as the app's dependencies."""
    def _install(cat, automation=None):
        app.dependency_overrides[get_catalog] = lambda: cat
        app.dependency_overrides[get_automation] = lambda: automation
        return cat
    yield _install
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
