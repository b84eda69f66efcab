# services/ranking_service.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from services.catalog import Catalog
from services.errors import DataUnavailable, RankingUnavailable
from services.models import RankedStore, Store
from utils.geo import haversine_km

MAX_STORES = 10


def rank_stores(
    stores: Iterable[Store],
    lat: float,
    lng: float,
    quantities: Optional[Dict[int, int]] = None,
    in_stock_only: bool = False,
    limit: int = MAX_STORES,
) -> List[RankedStore]:
    """
    Order stores by haversine distance from (lat, lng), nearest first, ties by id.

    With `quantities` (a product's {store_id: qty}) every store is annotated,
    stores missing from the map getting 0. `in_stock_only` drops those zeros
    before the cap is applied.
    """
    limit = max(0, min(int(limit), MAX_STORES))
    ranked = []
    for s in stores:
        qty = None
        if quantities is not None:
            qty = int(quantities.get(s.id, 0) or 0)
            if in_stock_only and qty <= 0:
                continue
        ranked.append(
            RankedStore(
                id=s.id,
                name=s.name,
                address=s.address,
                latitude=s.latitude,
                longitude=s.longitude,
                distance_km=haversine_km(lat, lng, s.latitude, s.longitude),
                quantity=qty,
            )
        )
    ranked.sort(key=lambda r: (r.distance_km, r.id))
    return ranked[:limit]


async def rank(
    catalog: Catalog,
    lat: float,
    lng: float,
    product_id: Optional[int] = None,
    in_stock_only: bool = False,
    limit: int = MAX_STORES,
) -> List[RankedStore]:
    """Nearest stores to a point, optionally annotated with one product's stock."""
    try:
        stores = await catalog.fetch_stores()
        quantities = await catalog.stock_for_product(product_id) if product_id is not None else None
    except DataUnavailable as e:
        raise RankingUnavailable(str(e)) from e
    return rank_stores(stores, lat, lng, quantities, in_stock_only=in_stock_only, limit=limit)
