# tests/test_ranking_service.py
import pytest

from services.errors import DataUnavailable, RankingUnavailable
from services.models import Store
from services.ranking_service import MAX_STORES, rank, rank_stores
from tests.conftest import ISTANBUL, STOCK, STORES, FakeCatalog
from utils.geo import haversine_km


def _grid(n):
    # stores spread north of the origin, deliberately listed out of order
    return [Store(id=i, name=f"S{i}", latitude=41.0 + 0.01 * ((i * 7) % n), longitude=29.0) for i in range(1, n + 1)]


class TestRankStores:
    def test_nearest_first_and_capped(self):
        ranked = rank_stores(_grid(15), 41.0, 29.0)
        assert len(ranked) == MAX_STORES
        distances = [r.distance_km for r in ranked]
        assert distances == sorted(distances)

    def test_limit_cannot_exceed_ten(self):
        assert len(rank_stores(_grid(15), 41.0, 29.0, limit=50)) == MAX_STORES
        assert len(rank_stores(_grid(15), 41.0, 29.0, limit=3)) == 3

    def test_ties_broken_by_store_id(self):
        stores = [
            Store(id=5, name="late", latitude=41.05, longitude=29.0),
            Store(id=2, name="early", latitude=41.05, longitude=29.0),
            Store(id=9, name="far", latitude=42.0, longitude=29.0),
        ]
        assert [r.id for r in rank_stores(stores, 41.0, 29.0)] == [2, 5, 9]

    def test_uses_haversine_distance(self):
        stores = [Store(id=1, name="Beşiktaş", latitude=41.0430, longitude=29.0054)]
        (r,) = rank_stores(stores, *ISTANBUL)
        assert r.distance_km == pytest.approx(haversine_km(*ISTANBUL, 41.0430, 29.0054))

    def test_missing_stock_row_annotates_zero(self):
        stores = _grid(3)
        ranked = rank_stores(stores, 41.0, 29.0, quantities={1: 4})
        by_id = {r.id: r.quantity for r in ranked}
        assert by_id == {1: 4, 2: 0, 3: 0}

    def test_without_product_quantity_is_absent(self):
        assert all(r.quantity is None for r in rank_stores(_grid(3), 41.0, 29.0))

    def test_in_stock_only_filters_before_cap(self):
        stores = _grid(15)
        quantities = {14: 1, 15: 2}
        ranked = rank_stores(stores, 41.0, 29.0, quantities=quantities, in_stock_only=True)
        assert sorted(r.id for r in ranked) == [14, 15]

    def test_empty(self):
        assert rank_stores([], 0.0, 0.0) == []


@pytest.mark.asyncio
async def test_rank_with_product_annotates_every_store():
    cat = FakeCatalog(stores=STORES, stock=STOCK)
    ranked = await rank(cat, *ISTANBUL, product_id=2)
    # Kadıköy edges out Beşiktaş by ~12 m; the degrees×111 shortcut would put Beşiktaş first
    assert [r.id for r in ranked] == [2, 1, 3]
    assert [r.quantity for r in ranked] == [0, 0, 0]


@pytest.mark.asyncio
async def test_rank_without_product_skips_stock_lookup():
    cat = FakeCatalog(stores=STORES, stock=STOCK)
    ranked = await rank(cat, *ISTANBUL)
    assert len(ranked) == 3
    assert [c[0] for c in cat.calls] == ["fetch_stores"]


@pytest.mark.asyncio
async def test_store_failure_becomes_ranking_unavailable():
    cat = FakeCatalog(stores=STORES, fail=True)
    with pytest.raises(RankingUnavailable) as exc:
        await rank(cat, *ISTANBUL, product_id=1)
    assert isinstance(exc.value, DataUnavailable)
