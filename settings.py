# settings.py
import os
from dotenv import load_dotenv
from fastapi import Request, HTTPException

load_dotenv()

# -----------------------------------------------------------------------------
# Core app settings
# -----------------------------------------------------------------------------
ENV = (os.getenv("ENV") or "development").lower()
ENABLE_DOCS = ENV != "production"

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
# Built single-page client (served at / when the directory exists)
FRONTEND_DIST = os.getenv("FRONTEND_DIST", os.path.join(BASE_DIR, "frontend", "dist", "frontend"))

APP_WEB_ORIGIN = (os.getenv("APP_WEB_ORIGIN") or "").strip()
ALLOW_ORIGINS = [o.strip() for o in APP_WEB_ORIGIN.split(",") if o.strip()] or ["*"]

LOG_REQUESTS = (os.getenv("LOG_REQUESTS") or "").lower() in {"1", "true", "yes"}

# Per-IP cap for search / nearest-store calls
SEARCH_RATE_PER_MIN = int(os.getenv("SEARCH_RATE_PER_MIN", "60"))

# -----------------------------------------------------------------------------
# Collaborator store
# -----------------------------------------------------------------------------
# "postgres" → asyncpg pool on DATABASE_URL
# "supabase" → hosted PostgREST API on SUPABASE_URL
CATALOG_BACKEND = (os.getenv("CATALOG_BACKEND") or "postgres").strip().lower()

DATABASE_URL = os.getenv("DATABASE_URL")
DB_CONNECT_TIMEOUT = float(os.getenv("DB_CONNECT_TIMEOUT", "8"))
AUTO_CREATE_SCHEMA = (os.getenv("AUTO_CREATE_SCHEMA") or "").lower() in {"1", "true", "yes"}

SUPABASE_URL = (os.getenv("SUPABASE_URL") or "").strip()
# service key bypasses RLS; anon key is enough for read-only tables
SUPABASE_KEY = (os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_ANON_KEY") or "").strip()
SUPABASE_TIMEOUT = float(os.getenv("SUPABASE_TIMEOUT", "10"))

# -----------------------------------------------------------------------------
# Automation webhooks (n8n)
# -----------------------------------------------------------------------------
# Search / nearest-store delegates are optional; leave empty to always hit the DB.
N8N_SEARCH_WEBHOOK_URL = (os.getenv("N8N_SEARCH_WEBHOOK_URL") or "").strip()
N8N_NEAREST_WEBHOOK_URL = (os.getenv("N8N_NEAREST_WEBHOOK_URL") or "").strip()
N8N_CHAT_WEBHOOK_URL = (os.getenv("N8N_CHAT_WEBHOOK_URL") or os.getenv("N8N_WEBHOOK_URL") or "").strip()
AUTOMATION_TIMEOUT = float(os.getenv("AUTOMATION_TIMEOUT", "15"))


# -----------------------------------------------------------------------------
# Request dependencies (handles are built at startup and live on app.state)
# -----------------------------------------------------------------------------
def get_catalog(request: Request):
    """
    Dependency returning the Catalog built at startup.
    Raises 503 if it is missing (startup failed to reach the store).
    """
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        raise HTTPException(status_code=503, detail="Catalog not ready")
    return catalog


def get_automation(request: Request):
    """Dependency returning the AutomationClient, or None when no webhook is configured."""
    return getattr(request.app.state, "automation", None)
