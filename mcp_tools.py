# mcp_tools.py
"""
Minimal MCP-style JSON-RPC 2.0 tool server so workflow automations (n8n) can
query the catalogue: POST /mcp with method "tools/list" or "tools/call".
Every tool goes through the same resolvers as the public endpoints.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from settings import get_catalog
from services.errors import DataUnavailable
from services.models import as_product_id
from services.ranking_service import rank_stores
from services.search_service import clean_query, search
from utils.geo import is_valid_coordinate

logger = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["mcp"])

NEAREST_COUNT = 3

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700

TOOLS = [
    {
        "name": "search_products",
        "description": "Search products by name, brand or category",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": 'Product search query (e.g. "mercimek", "tencere")'},
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_all_stores",
        "description": "Get all stores with location and address information",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "get_stock_info",
        "description": "Get stock information for a specific product across all stores",
        "inputSchema": {
            "type": "object",
            "properties": {"productId": {"type": "number", "description": "Product ID to check stock for"}},
            "required": ["productId"],
        },
    },
    {
        "name": "find_nearest_store",
        "description": "Find the nearest stores to given coordinates",
        "inputSchema": {
            "type": "object",
            "properties": {
                "lat": {"type": "number", "description": "Latitude (e.g. 41.0082 for Istanbul)"},
                "lng": {"type": "number", "description": "Longitude (e.g. 28.9784 for Istanbul)"},
                "productId": {"type": "number", "description": "Product ID to check availability"},
            },
            "required": ["lat", "lng"],
        },
    },
]


class InvalidParams(ValueError):
    pass


def _store_dict(s) -> Dict[str, Any]:
    return {"id": s.id, "name": s.name, "latitude": s.latitude, "longitude": s.longitude, "address": s.address}


def _product_id(args) -> int:
    pid = as_product_id(args.get("productId"))
    if pid is None or pid <= 0:
        raise InvalidParams("productId must be a positive integer")
    return pid


async def _search_products(catalog, args):
    query = clean_query(str(args.get("query") or ""))
    if not query:
        raise InvalidParams("query is required")
    results = await search(catalog, query)
    products = [
        {
            "id": r.id,
            "name": r.name,
            "brand": r.brand,
            "category": r.category,
            "totalQuantity": r.total_quantity,
        }
        for r in results
    ]
    return {"products": products, "count": len(products), "query": query}


async def _get_all_stores(catalog, args):
    stores = sorted(await catalog.fetch_stores(), key=lambda s: (s.name.lower(), s.id))
    return {"stores": [_store_dict(s) for s in stores], "count": len(stores)}


async def _get_stock_info(catalog, args):
    pid = _product_id(args)
    quantities = await catalog.stock_for_product(pid)
    stores = {s.id: s for s in await catalog.fetch_stores()}
    stock = [
        {"quantity": qty, "store": _store_dict(stores[sid])}
        for sid, qty in sorted(quantities.items())
        if qty > 0 and sid in stores
    ]
    return {"stock": stock, "productId": pid, "availableStores": len(stock)}


async def _find_nearest_store(catalog, args):
    lat, lng = args.get("lat"), args.get("lng")
    if not is_valid_coordinate(lat, lng):
        raise InvalidParams("lat/lng must be valid coordinates")
    lat, lng = float(lat), float(lng)
    pid = _product_id(args) if args.get("productId") is not None else None

    stores = await catalog.fetch_stores()
    quantities = await catalog.stock_for_product(pid) if pid is not None else None
    ranked = rank_stores(stores, lat, lng, quantities, limit=NEAREST_COUNT)
    nearest = []
    for r in ranked:
        item = {
            "id": r.id,
            "name": r.name,
            "address": r.address,
            "latitude": r.latitude,
            "longitude": r.longitude,
            "distanceKm": round(r.distance_km, 2),
        }
        if pid is not None:
            item["quantity"] = r.quantity
        nearest.append(item)
    return {
        "nearest_stores": nearest,
        "userLocation": {"lat": lat, "lng": lng},
        "totalStores": len(stores),
    }


TOOL_HANDLERS = {
    "search_products": _search_products,
    "get_all_stores": _get_all_stores,
    "get_stock_info": _get_stock_info,
    "find_nearest_store": _find_nearest_store,
}


def _error(req_id, code: int, message: str):
    return JSONResponse({"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}})


@router.post("/mcp")
async def mcp_endpoint(request: Request, catalog=Depends(get_catalog)):
    try:
        body = await request.json()
    except ValueError:
        return _error(None, PARSE_ERROR, "Parse error")
    if not isinstance(body, dict):
        return _error(None, INVALID_PARAMS, "Request must be an object")

    req_id = body.get("id")
    method = body.get("method")
    params = body.get("params") or {}

    if method == "tools/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"tools": TOOLS}}
    if method != "tools/call":
        return _error(req_id, METHOD_NOT_FOUND, f"Unknown method: {method}")

    name = params.get("name") if isinstance(params, dict) else None
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return _error(req_id, METHOD_NOT_FOUND, f"Unknown tool: {name}")
    args = params.get("arguments") or {}
    if not isinstance(args, dict):
        return _error(req_id, INVALID_PARAMS, "arguments must be an object")

    try:
        result = await handler(catalog, args)
    except InvalidParams as e:
        return _error(req_id, INVALID_PARAMS, str(e))
    except DataUnavailable as e:
        logger.warning("mcp tool %s: %s", name, e)
        return _error(req_id, INTERNAL_ERROR, "Tool execution error: service unavailable")
    return {"jsonrpc": "2.0", "id": req_id, "result": result}
