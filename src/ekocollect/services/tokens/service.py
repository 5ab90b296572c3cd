"""Wiring of the token ledger to its configured storage backend."""

from __future__ import annotations

import logging
from functools import lru_cache

from ...db.supabase import get_supabase_client
from ...persistence.pickups import InMemoryPickupRepository, SupabasePickupRepository
from ...persistence.profiles import InMemoryBalanceCache, SupabaseBalanceCache
from ...persistence.transactions import InMemoryTransactionStore, SupabaseTransactionStore
from .ledger import TokenLedger


@lru_cache()
def get_token_ledger() -> TokenLedger:
    """Process-wide ledger: Supabase when configured, otherwise in memory."""
    client = get_supabase_client()
    if client is None:
        logging.warning("Supabase not configured - token ledger will be kept in memory for this process")
        return TokenLedger(
            transactions=InMemoryTransactionStore(),
            pickups=InMemoryPickupRepository(),
            balances=InMemoryBalanceCache(),
        )
    return TokenLedger(
        transactions=SupabaseTransactionStore(client),
        pickups=SupabasePickupRepository(client),
        balances=SupabaseBalanceCache(client),
    )
