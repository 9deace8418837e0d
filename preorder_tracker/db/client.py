"""Shared Supabase client - single lazy-loaded instance for the entire app."""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable

from supabase import Client, create_client

from ..core.config import get_settings
from ..core.exceptions import StoreError
from ..core.logging import log_db_query, log_error

_supabase: Client | None = None
_client_lock = threading.Lock()


def get_supabase_client() -> Client:
    """Get or create the shared Supabase client (thread-safe)."""
    global _supabase
    if _supabase is None:
        with _client_lock:
            if _supabase is None:
                settings = get_settings()
                _supabase = create_client(settings.supabase_url, settings.supabase_key)
    return _supabase


def run_query(
    build: Callable[[], Any],
    operation: str,
    table: str,
    error_cls: type[StoreError] = StoreError,
) -> list[dict[str, Any]]:
    """Build and execute a query, returning its rows.

    Any client/transport failure is logged and re-raised as ``error_cls`` so
    callers can tell "store down" apart from "no rows".
    """
    start = time.time()
    try:
        result = build().execute()
    except Exception as e:
        log_error(f"DB {operation} failed", e, table=table)
        raise error_cls(f"{operation} on {table} failed: {e}") from e
    log_db_query(operation, table, (time.time() - start) * 1000)

    if not result.data or not isinstance(result.data, list):
        return []
    return [row for row in result.data if isinstance(row, dict)]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
