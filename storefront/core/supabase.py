"""Shared Supabase client and the helper that runs its queries.

The supabase client speaks PostgREST over a blocking HTTP session, so every
query goes through ``execute`` which hands it to Starlette's threadpool and
keeps the event loop free for WebSocket fan-out and other requests.
"""

from functools import lru_cache
from typing import Any

from postgrest import APIResponse
from starlette.concurrency import run_in_threadpool
from supabase import Client, create_client

from storefront.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Service-role client shared by every store and service.

    The secret key bypasses row level security, so callers authorize the
    user before touching a row.
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_secret_key)


async def execute(query: Any) -> APIResponse:
    """Run a built PostgREST query without blocking the event loop.

    Args:
        query: A request builder, e.g. ``client.table("orders").select("*")``.

    Returns:
        APIResponse: The query response (``data`` and ``count``).
    """
    return await run_in_threadpool(query.execute)


async def check_database_connection() -> dict[str, Any]:
    """Read one order id to prove PostgREST answers.

    Returns:
        dict: 'healthy' flag and, on failure, the 'error' text.
    """
    try:
        await execute(get_supabase_client().table("orders").select("id").limit(1))
    except Exception as e:
        return {"healthy": False, "error": str(e)}
    return {"healthy": True}
