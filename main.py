# main.py
import os
import sys
import logging
import asyncpg
import traceback
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

# Ensure app root on path
APP_ROOT = os.path.dirname(os.path.abspath(__file__))
if APP_ROOT not in sys.path:
    sys.path.insert(0, APP_ROOT)

from settings import (
    ENABLE_DOCS, FRONTEND_DIST, ALLOW_ORIGINS, LOG_REQUESTS,
    CATALOG_BACKEND, DATABASE_URL, DB_CONNECT_TIMEOUT, AUTO_CREATE_SCHEMA,
    SUPABASE_URL, SUPABASE_KEY, SUPABASE_TIMEOUT,
    N8N_SEARCH_WEBHOOK_URL, N8N_NEAREST_WEBHOOK_URL, N8N_CHAT_WEBHOOK_URL, AUTOMATION_TIMEOUT,
)

from middlewares.headers import security_and_cache_headers
from services.automation import AutomationClient
from services.catalog import PostgresCatalog, SupabaseCatalog
from services.errors import DataUnavailable

# Routers
from products import router as products_router
from stores import router as stores_router
from categories import router as categories_router
from chatbot import router as chat_router
from mcp_tools import router as mcp_router

logger = logging.getLogger("uvicorn.error")

app = FastAPI(
    title="Store Finder",
    version="1.0.0",
    description="Find products and the nearest store that has them",
    docs_url="/docs" if ENABLE_DOCS else None,
    redoc_url="/redoc" if ENABLE_DOCS else None,
    openapi_url="/openapi.json" if ENABLE_DOCS else None,
)


# ---- log full tracebacks so 500s aren’t silent ----
class TraceLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error("\n===== UNCAUGHT EXCEPTION =====")
            logger.error("Path: %s %s", request.method, request.url.path)
            logger.error(traceback.format_exc())
            logger.error("===== END TRACE =====\n")
            raise
app.add_middleware(TraceLogMiddleware)
# ---------------------------------------------------

app.middleware("http")(security_and_cache_headers)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=ALLOW_ORIGINS != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# -------- Error mapping --------
@app.exception_handler(RequestValidationError)
async def invalid_input_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Invalid query", "detail": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(DataUnavailable)
async def data_unavailable_handler(request: Request, exc: DataUnavailable):
    # collaborator details stay in the log
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse({"error": "Service unavailable"}, status_code=503)


# -------- Collaborator handles --------
@app.on_event("startup")
async def startup():
    app.state.catalog = None
    try:
        if CATALOG_BACKEND == "supabase":
            if not (SUPABASE_URL and SUPABASE_KEY):
                raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY/SUPABASE_ANON_KEY are required")
            app.state.catalog = SupabaseCatalog(SUPABASE_URL, SUPABASE_KEY, timeout=SUPABASE_TIMEOUT)
            logger.info("✅ Supabase catalog ready")
        else:
            pool = await asyncpg.create_pool(DATABASE_URL, timeout=DB_CONNECT_TIMEOUT)
            app.state.catalog = PostgresCatalog(pool)
            logger.info("✅ DB pool created")
            if AUTO_CREATE_SCHEMA:
                await app.state.catalog.ensure_schema()
                logger.info("Schema ensured")
    except Exception as e:
        logger.error(f"⚠️ Failed to set up {CATALOG_BACKEND} catalog at startup: {e}")
        if app.state.catalog is not None:
            await app.state.catalog.close()
        app.state.catalog = None

    if N8N_SEARCH_WEBHOOK_URL or N8N_NEAREST_WEBHOOK_URL or N8N_CHAT_WEBHOOK_URL:
        app.state.automation = AutomationClient(
            search_url=N8N_SEARCH_WEBHOOK_URL,
            nearest_url=N8N_NEAREST_WEBHOOK_URL,
            chat_url=N8N_CHAT_WEBHOOK_URL,
            timeout=AUTOMATION_TIMEOUT,
        )
        logger.info(
            "Automation webhooks: search=%s nearest=%s chat=%s",
            bool(N8N_SEARCH_WEBHOOK_URL), bool(N8N_NEAREST_WEBHOOK_URL), bool(N8N_CHAT_WEBHOOK_URL),
        )
    else:
        app.state.automation = None


@app.on_event("shutdown")
async def shutdown():
    try:
        if getattr(app.state, "catalog", None):
            await app.state.catalog.close()
            logger.info("🔌 Catalog closed")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# -------- Router mounts (root + /api) --------
for r in (products_router, stores_router, categories_router, chat_router, mcp_router):
    app.include_router(r)
    app.include_router(r, prefix="/api")


# robots + health
@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots():
    return (
        "User-agent: *\n"
        "Disallow: /api/\n"
        "Disallow: /searchProduct\n"
        "Disallow: /nearestStore\n"
        "Disallow: /chat\n"
        "Disallow: /mcp\n"
    )


@app.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    return "ok"


@app.get("/api/health")
@app.get("/health")
async def health():
    return {"status": "ok"}


# Optional request logging
if LOG_REQUESTS:
    @app.middleware("http")
    async def _req_logger(request, call_next):
        logger.info(f"➡ {request.method} {request.url.path} from {request.client.host if request.client else 'unknown'}")
        resp = await call_next(request)
        logger.info(f"⬅ {request.method} {request.url.path} -> {resp.status_code}")
        return resp


# -------- Browser client (SPA) --------
class SPAStaticFiles(StaticFiles):
    """Serves the built client; unknown non-API paths get index.html so client-side routes work."""

    async def get_response(self, path, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as e:
            if e.status_code != 404 or path.startswith("api/") or path == "api":
                raise
        return await super().get_response("index.html", scope)


if os.path.isdir(FRONTEND_DIST):
    app.mount("/", SPAStaticFiles(directory=FRONTEND_DIST, html=True), name="frontend")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="debug",
    )
