"""FastAPI dependency injection for stores and admin auth."""

import time
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request

from supabase import Client

from ..db.client import get_supabase_client
from ..db.constraints import ConstraintStore
from ..db.options import OptionStore
from ..db.orders import OrderStore
from .config import Settings, get_settings
from .logging import log_db_query, log_external_call, logger

# -----------------------------------------------------------------------------
# Supabase-backed stores
# -----------------------------------------------------------------------------

# Cached store instance (holds the constraint list cache)
_constraint_store: ConstraintStore | None = None


def get_supabase() -> Client:
    """Dependency for Supabase client."""
    return get_supabase_client()


def get_constraint_store(
    supabase: Annotated[Client, Depends(get_supabase)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ConstraintStore:
    """Dependency for the constraint store (one instance per process)."""
    global _constraint_store
    if _constraint_store is None:
        _constraint_store = ConstraintStore(
            supabase,
            table=settings.constraints_table,
            cache_ttl=settings.constraint_cache_ttl,
        )
    return _constraint_store


def get_option_store(
    supabase: Annotated[Client, Depends(get_supabase)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OptionStore:
    return OptionStore(supabase, table=settings.options_table)


def get_order_store(
    supabase: Annotated[Client, Depends(get_supabase)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OrderStore:
    return OrderStore(supabase, table=settings.orders_table)


# -----------------------------------------------------------------------------
# Admin Authentication
# -----------------------------------------------------------------------------


async def verify_admin_key(
    request: Request,
    x_admin_key: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> bool:
    """Verify admin API key for protected endpoints."""
    if not settings.api_admin_key:
        logger.warning("API_ADMIN_KEY not set - admin endpoints unprotected")
        raise HTTPException(
            status_code=503,
            detail="Admin endpoints not configured. Set API_ADMIN_KEY environment variable.",
        )

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-Key header",
        )

    if x_admin_key != settings.api_admin_key:
        logger.warning(f"Invalid admin key attempt from {request.client}")
        raise HTTPException(
            status_code=403,
            detail="Invalid admin key",
        )

    return True


# -----------------------------------------------------------------------------
# Health Check Helpers
# -----------------------------------------------------------------------------


async def check_supabase_health(supabase: Client, table: str) -> dict[str, Any]:
    """Check Supabase connectivity."""
    start = time.time()
    try:
        supabase.table(table).select("id").limit(1).execute()
        duration_ms = (time.time() - start) * 1000
        log_db_query("health_check", table, duration_ms)
        return {
            "status": "healthy",
            "latency_ms": round(duration_ms, 2),
        }
    except Exception as e:
        duration_ms = (time.time() - start) * 1000
        log_external_call("supabase", "health_check", False, duration_ms)
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": round(duration_ms, 2),
        }
