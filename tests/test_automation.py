# tests/test_automation.py
import asyncio
import json

import httpx
import pytest

from services.automation import (
    SOURCE_AUTOMATION,
    SOURCE_DATABASE,
    AutomationClient,
    resolve_with_fallback,
)
from services.errors import AutomationError, SearchUnavailable
from tests.conftest import ISTANBUL

SEARCH_URL = "https://n8n.example/webhook/search"
NEAREST_URL = "https://n8n.example/webhook/nearest"


def _client(handler, **kwargs):
    return AutomationClient(
        search_url=SEARCH_URL,
        nearest_url=NEAREST_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestAutomationClient:
    @pytest.mark.asyncio
    async def test_search_payload_and_dedup(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"items": [
                {"id": 1, "product_name": "Zeytin", "brand_name": "BİM", "totalQuantity": 2},
                {"id": None, "product_name": "zeytin", "brand_name": "bim", "totalQuantity": 3},
                {"id": 2, "product_name": "Tava", "brand_name": "BİM"},
            ]})

        results = await _client(handler).search("zeytin")
        assert seen["url"] == SEARCH_URL
        assert seen["body"] == {"action": "searchProduct", "payload": {"q": "zeytin"}}
        assert [(r.id, r.total_quantity) for r in results] == [(1, 5), (2, None)]

    @pytest.mark.asyncio
    async def test_nearest_is_reranked_locally(self):
        def handler(request):
            # the flow's own distances are wrong and in the wrong order
            return httpx.Response(200, json=[
                {"id": 3, "name": "Şişli", "latitude": 41.0600, "longitude": 28.9872, "distanceKm": 0.1, "quantity": 1},
                {"id": 1, "name": "Beşiktaş", "latitude": 41.0430, "longitude": 29.0054, "distanceKm": 9.0},
                {"id": 2, "name": "Kadıköy", "latitude": 40.9917, "longitude": 29.0270, "distanceKm": 5.0, "quantity": 2},
                {"id": 4, "name": "no coords"},
            ])

        ranked = await _client(handler).nearest(*ISTANBUL, product_id=7)
        assert [r.id for r in ranked] == [2, 1, 3]
        assert [r.quantity for r in ranked] == [2, 0, 1]
        assert ranked[1].distance_km == pytest.approx(4.48, abs=0.01)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"message": "workflow crashed"}),
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"message": "no items here"}),
            httpx.Response(200, json={"items": ["just", "strings"]}),
        ],
    )
    async def test_bad_answers_raise(self, response):
        with pytest.raises(AutomationError):
            await _client(lambda request: response).search("tava")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AutomationError):
            await _client(handler).nearest(41.0, 29.0)

    @pytest.mark.asyncio
    async def test_unconfigured_webhook_raises(self):
        with pytest.raises(AutomationError):
            await AutomationClient().chat("menemen nasıl yapılır?", "s-1")


class TestFallback:
    @pytest.mark.asyncio
    async def test_delegate_answer_is_tagged(self):
        async def delegate():
            return ["from-flow"]

        async def direct():
            raise AssertionError("direct path must not run")

        assert await resolve_with_fallback(delegate, direct, timeout=1) == (["from-flow"], SOURCE_AUTOMATION)

    @pytest.mark.asyncio
    async def test_delegate_failure_falls_back(self):
        async def delegate():
            raise AutomationError("502 from webhook")

        async def direct():
            return ["from-db"]

        assert await resolve_with_fallback(delegate, direct, timeout=1) == (["from-db"], SOURCE_DATABASE)

    @pytest.mark.asyncio
    async def test_empty_delegate_answer_falls_back(self):
        async def delegate():
            return []

        async def direct():
            return ["from-db"]

        assert await resolve_with_fallback(delegate, direct, timeout=1) == (["from-db"], SOURCE_DATABASE)

    @pytest.mark.asyncio
    async def test_delegate_timeout_falls_back(self):
        async def delegate():
            await asyncio.sleep(5)
            return ["too late"]

        async def direct():
            return ["from-db"]

        assert await resolve_with_fallback(delegate, direct, timeout=0.01) == (["from-db"], SOURCE_DATABASE)

    @pytest.mark.asyncio
    async def test_no_delegate(self):
        async def direct():
            return []

        assert await resolve_with_fallback(None, direct, timeout=1) == ([], SOURCE_DATABASE)

    @pytest.mark.asyncio
    async def test_direct_failure_propagates(self):
        async def delegate():
            raise AutomationError("down")

        async def direct():
            raise SearchUnavailable("db down too")

        with pytest.raises(SearchUnavailable):
            await resolve_with_fallback(delegate, direct, timeout=1)


class TestEndpointsWithDelegate:
    @pytest.mark.asyncio
    async def test_search_served_by_flow(self, client, use_catalog, catalog):
        def handler(request):
            return httpx.Response(200, json={"items": [{"id": 42, "name": "Menemen Tavası", "brand": "BİM"}]})

        use_catalog(catalog, _client(handler))
        resp = await client.get("/api/searchProduct", params={"q": "tava"})
        data = resp.json()
        assert data["source"] == "automation"
        assert [i["id"] for i in data["items"]] == [42]
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_search_falls_back_to_database(self, client, use_catalog, catalog):
        use_catalog(catalog, _client(lambda request: httpx.Response(503)))
        resp = await client.get("/api/searchProduct", params={"q": "tencere"})
        data = resp.json()
        assert data["source"] == "database"
        assert data["items"][0]["totalQuantity"] == 8

    @pytest.mark.asyncio
    async def test_empty_flow_answer_does_not_hide_database_hits(self, client, use_catalog, catalog):
        use_catalog(catalog, _client(lambda request: httpx.Response(200, json={"items": []})))
        resp = await client.get("/api/searchProduct", params={"q": "tencere"})
        data = resp.json()
        assert data["source"] == "database"
        assert data["items"][0]["totalQuantity"] == 8

    @pytest.mark.asyncio
    async def test_nearest_falls_back_to_database(self, client, use_catalog, catalog):
        use_catalog(catalog, _client(lambda request: httpx.Response(200, text="oops")))
        lat, lng = ISTANBUL
        resp = await client.get("/api/nearestStore", params={"lat": lat, "lng": lng, "productId": 1})
        data = resp.json()
        assert data["source"] == "database"
        assert [i["id"] for i in data["items"]] == [2, 1, 3]

    @pytest.mark.asyncio
    async def test_flow_not_used_when_only_chat_configured(self, client, use_catalog, catalog):
        def handler(request):
            raise AssertionError("no webhook call expected")

        use_catalog(catalog, AutomationClient(chat_url="https://n8n.example/chat", transport=httpx.MockTransport(handler)))
        resp = await client.get("/api/searchProduct", params={"q": "tava"})
        assert resp.json()["source"] == "database"
