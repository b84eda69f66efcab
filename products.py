from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import Optional

from settings import AUTOMATION_TIMEOUT, SEARCH_RATE_PER_MIN, get_automation, get_catalog
from services.automation import resolve_with_fallback
from services.search_service import clean_query, search
from utils.throttle import throttle

router = APIRouter(tags=["products"])


def _search_item(r):
    return {
        "id": r.id,
        "name": r.name,
        "brand": r.brand,
        "category": r.category,
        "totalQuantity": r.total_quantity,
        "brandLogo": r.logo,
    }


def _product_item(p):
    return {
        "id": p.id,
        "name": p.name,
        "brand": p.brand,
        "category": p.category,
        "brandLogo": p.image_url,
    }


# ----------------------------- SEARCH -----------------------------
@router.get("/searchProduct")
@throttle(limit=SEARCH_RATE_PER_MIN, window=60)
async def search_product(
    request: Request,
    q: str = Query(..., min_length=1, max_length=100, description="Product name, brand or category"),
    catalog=Depends(get_catalog),
    automation=Depends(get_automation),
):
    """
    Products matching q (case-insensitive substring of name, brand or category),
    with stock summed across stores and duplicate catalogue rows merged.
    Best-stocked first; products without any stock rows last.

    When a search webhook is configured it is asked first; `source` says
    whether the items came from "automation" or "database".
    """
    term = clean_query(q)
    if not term:
        raise HTTPException(status_code=400, detail="Query too broad")

    delegate = None
    if automation is not None and automation.search_url:
        delegate = lambda: automation.search(term)  # noqa: E731

    results, source = await resolve_with_fallback(
        delegate,
        lambda: search(catalog, term),
        timeout=AUTOMATION_TIMEOUT,
        label="searchProduct",
    )
    return {"items": [_search_item(r) for r in results], "source": source}


# ----------------------------- BY CATEGORY -----------------------------
@router.get("/productsByCategory")
async def products_by_category(
    category: Optional[str] = Query(None, description="Exact category label"),
    catalog=Depends(get_catalog),
):
    category = (category or "").strip()
    if not category:
        raise HTTPException(status_code=400, detail="Category parameter required")

    products = await catalog.products_by_category(category)
    items = [_product_item(p) for p in products]
    return {"items": items, "count": len(items), "category": category}
