"""Denormalised token balance cached on collector profiles.

The ledger sum is authoritative; this cache only serves profile displays and
is rewritten by reconciliation.
"""

from __future__ import annotations

from typing import Any, Protocol

from postgrest.exceptions import APIError

from ..config import settings
from .transactions import LedgerError


class BalanceCache(Protocol):
    def get_balance(self, collector_id: str) -> int | None: ...

    def set_balance(self, collector_id: str, balance: int) -> None: ...


class InMemoryBalanceCache:
    def __init__(self) -> None:
        self._balances: dict[str, int] = {}

    def get_balance(self, collector_id: str) -> int | None:
        return self._balances.get(collector_id)

    def set_balance(self, collector_id: str, balance: int) -> None:
        self._balances[collector_id] = balance


class SupabaseBalanceCache:
    def __init__(self, client: Any, table: str | None = None) -> None:
        self.client = client
        self.table = table or settings.profiles_table

    def get_balance(self, collector_id: str) -> int | None:
        try:
            response = (
                self.client.table(self.table)
                .select("eko_tokens")
                .eq("user_id", collector_id)
                .limit(1)
                .execute()
            )
        except APIError as exc:
            raise LedgerError(f"Failed to read cached balance for {collector_id}: {exc}") from exc
        rows = response.data or []
        if not rows or rows[0].get("eko_tokens") is None:
            return None
        return int(rows[0]["eko_tokens"])

    def set_balance(self, collector_id: str, balance: int) -> None:
        try:
            self.client.table(self.table).update({"eko_tokens": balance}).eq("user_id", collector_id).execute()
        except APIError as exc:
            raise LedgerError(f"Failed to cache balance for {collector_id}: {exc}") from exc
