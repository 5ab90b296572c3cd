"""Liveness and storage health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...db import supabase as supabase_db

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    return {"status": "ok"}


@router.get("/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Row counts for the ledger, pickup and profile tables, or the in-memory notice."""
    client = supabase_db.get_supabase_client()
    if client is None:
        return {
            "configured": False,
            "backend": "memory",
            "message": "Supabase not configured. Set EKO_SUPABASE_URL and EKO_SUPABASE_KEY; "
            "token balances are kept in memory and lost on restart.",
        }

    tables: dict[str, dict] = {}
    for table in (settings.transactions_table, settings.pickups_table, settings.profiles_table):
        try:
            response = client.table(table).select("id", count="exact").limit(1).execute()
            tables[table] = {"reachable": True, "rows": response.count or 0}
        except Exception as exc:
            tables[table] = {"reachable": False, "error": str(exc)}

    connected = all(entry["reachable"] for entry in tables.values())
    return {
        "configured": True,
        "backend": "supabase",
        "connected": connected,
        "tables": tables,
        "message": "Database connected." if connected else "One or more ledger tables are unreachable.",
    }
