# services/automation.py
"""
Client for the external workflow automation webhooks (n8n flows), plus the
two-stage "ask the delegate, else query the database" strategy used by search
and ranking.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Tuple, TypeVar

import httpx

from services.errors import AutomationError
from services.models import RankedStore, SearchResult, product_row_from_mapping, store_from_mapping
from services.ranking_service import MAX_STORES, rank_stores
from services.search_service import MAX_CANDIDATES, dedupe_rows

logger = logging.getLogger("uvicorn.error")

SOURCE_DATABASE = "database"
SOURCE_AUTOMATION = "automation"

T = TypeVar("T")


def _items(data: Any) -> List[Mapping[str, Any]]:
    if isinstance(data, Mapping):
        data = data.get("items")
    if not isinstance(data, list):
        raise AutomationError("automation answer has no item list")
    if not all(isinstance(i, Mapping) for i in data):
        raise AutomationError("automation items must be objects")
    return data


class AutomationClient:
    def __init__(
        self,
        search_url: Optional[str] = None,
        nearest_url: Optional[str] = None,
        chat_url: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.search_url = search_url or None
        self.nearest_url = nearest_url or None
        self.chat_url = chat_url or None
        self.timeout = float(timeout)
        self.transport = transport

    async def post(self, url: Optional[str], payload: Mapping[str, Any]) -> Any:
        if not url:
            raise AutomationError("webhook not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(url, json=dict(payload))
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            raise AutomationError(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise AutomationError(f"webhook answered with non-JSON body: {e}") from e

    async def search(self, query: str) -> List[SearchResult]:
        data = await self.post(self.search_url, {"action": "searchProduct", "payload": {"q": query}})
        rows = [product_row_from_mapping(i) for i in _items(data)]
        return dedupe_rows(rows[:MAX_CANDIDATES])

    async def nearest(
        self,
        lat: float,
        lng: float,
        product_id: Optional[int] = None,
        in_stock_only: bool = False,
        limit: int = MAX_STORES,
    ) -> List[RankedStore]:
        """
        Stores proposed by the flow are re-ranked locally; whatever distance
        the flow computed is ignored.
        """
        data = await self.post(
            self.nearest_url,
            {"action": "nearestStore", "payload": {"lat": lat, "lng": lng, "productId": product_id}},
        )
        stores = []
        quantities = {} if product_id is not None else None
        for item in _items(data):
            store = store_from_mapping(item)
            if store is None:
                continue
            stores.append(store)
            if quantities is not None:
                try:
                    quantities[store.id] = max(0, int(item.get("quantity") or 0))
                except (TypeError, ValueError) as e:
                    raise AutomationError(f"bad quantity for store {store.id}") from e
        return rank_stores(stores, lat, lng, quantities, in_stock_only=in_stock_only, limit=limit)

    async def chat(self, message: str, session_id: str) -> Any:
        return await self.post(self.chat_url, {"chatInput": message, "sessionId": session_id})


async def resolve_with_fallback(
    delegate: Optional[Callable[[], Awaitable[T]]],
    direct: Callable[[], Awaitable[T]],
    timeout: float,
    label: str = "automation",
) -> Tuple[T, str]:
    """
    Try the delegate within `timeout` seconds; on failure or timeout run the
    direct resolver. An empty delegate answer counts as a miss. Returns
    (result, source) so callers can tell which answered.
    Errors from the direct resolver propagate.
    """
    if delegate is not None:
        try:
            result = await asyncio.wait_for(delegate(), timeout)
            if result:
                return result, SOURCE_AUTOMATION
            logger.warning("%s: automation returned no results, using database", label)
        except asyncio.TimeoutError:
            logger.warning("%s: automation timed out after %.1fs, using database", label, timeout)
        except AutomationError as e:
            logger.warning("%s: automation failed (%s), using database", label, e)
    return await direct(), SOURCE_DATABASE
