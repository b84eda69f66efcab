# stores.py
from fastapi import APIRouter, Depends, Query, Request
from typing import Optional

from settings import AUTOMATION_TIMEOUT, SEARCH_RATE_PER_MIN, get_automation, get_catalog
from services.automation import resolve_with_fallback
from services.ranking_service import MAX_STORES, rank
from utils.throttle import throttle

router = APIRouter(tags=["stores"])


def _ranked_item(r, with_quantity: bool):
    item = {
        "id": r.id,
        "name": r.name,
        "address": r.address,
        "latitude": r.latitude,
        "longitude": r.longitude,
        "distanceKm": round(r.distance_km, 2),
    }
    if with_quantity:
        item["quantity"] = r.quantity if r.quantity is not None else 0
    return item


@router.get("/nearestStore")
@throttle(limit=SEARCH_RATE_PER_MIN, window=60)
async def nearest_store(
    request: Request,
    lat: float = Query(..., ge=-90.0, le=90.0, allow_inf_nan=False, description="Origin latitude"),
    lng: float = Query(..., ge=-180.0, le=180.0, allow_inf_nan=False, description="Origin longitude"),
    productId: Optional[int] = Query(None, gt=0, description="Annotate each store with this product's stock"),
    inStockOnly: bool = Query(False, description="Only stores holding productId"),
    limit: int = Query(MAX_STORES, ge=1, le=MAX_STORES),
    catalog=Depends(get_catalog),
    automation=Depends(get_automation),
):
    """
    Up to 10 stores ordered by great-circle distance (km) from lat/lng, ties by id.
    With productId every store carries `quantity` (0 when it has no stock row).
    """
    delegate = None
    if automation is not None and automation.nearest_url:
        delegate = lambda: automation.nearest(lat, lng, productId, inStockOnly, limit)  # noqa: E731

    ranked, source = await resolve_with_fallback(
        delegate,
        lambda: rank(catalog, lat, lng, productId, in_stock_only=inStockOnly, limit=limit),
        timeout=AUTOMATION_TIMEOUT,
        label="nearestStore",
    )
    with_quantity = productId is not None
    return {"items": [_ranked_item(r, with_quantity) for r in ranked], "source": source}


@router.get("/stores")
async def list_stores(catalog=Depends(get_catalog)):
    stores = await catalog.fetch_stores()
    stores = sorted(stores, key=lambda s: (s.name.lower(), s.id))
    return {
        "items": [
            {
                "id": s.id,
                "name": s.name,
                "address": s.address,
                "latitude": s.latitude,
                "longitude": s.longitude,
            }
            for s in stores
        ],
        "count": len(stores),
    }
