# middlewares/headers.py
from fastapi import Request, Response

# Edge-cache lifetimes (seconds) for read-only catalogue endpoints
_SHORT_CACHE = ("/searchProduct",)
_NO_STORE = ("/chat", "/mcp")
_CACHED = (
    "/nearestStore", "/stores", "/categories", "/categories-with-images",
    "/productsByCategory", "/brandLogos",
)


def _route(path: str) -> str:
    return path[4:] if path.startswith("/api/") else path


async def security_and_cache_headers(request: Request, call_next):
    resp: Response = await call_next(request)
    path = _route(request.url.path)

    if resp.status_code == 200 and request.method == "GET":
        if path in _SHORT_CACHE:
            resp.headers.setdefault("Cache-Control", "s-maxage=30, stale-while-revalidate=300")
        elif path in _CACHED:
            resp.headers.setdefault("Cache-Control", "s-maxage=60, stale-while-revalidate=300")
    if path in _NO_STORE:
        resp.headers.setdefault("Cache-Control", "no-store")

    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return resp
