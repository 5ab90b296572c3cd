"""Supabase client shared by the ledger, pickup and profile stores."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings


def supabase_configured() -> bool:
    return bool(settings.supabase_url and settings.supabase_key)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Cached service-role client, or ``None`` when EKO_SUPABASE_URL/KEY are unset.

    Building the client does not contact the server; connection problems
    surface on the first query as ``postgrest`` errors.
    """
    if not supabase_configured():
        logging.warning("Supabase credentials not configured; stores will fall back to memory")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client for {settings.supabase_url}: {e}")
        return None
