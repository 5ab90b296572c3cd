"""Append-only storage for token ledger transactions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from postgrest.exceptions import APIError

from ..config import settings
from ..models.domain import (
    TokenTransaction,
    TransactionSource,
    TransactionType,
    metadata_from_dict,
    metadata_to_dict,
)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC so they compare with stored timestamps."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class LedgerError(RuntimeError):
    """A ledger read or write could not be completed."""


class DuplicateTransactionError(LedgerError):
    """A pickup-verification transaction already exists for this collector and pickup."""

    def __init__(self, collector_id: str, pickup_id: str, existing: TokenTransaction | None = None) -> None:
        self.collector_id = collector_id
        self.pickup_id = pickup_id
        self.existing = existing
        super().__init__(f"Tokens already awarded to {collector_id} for pickup {pickup_id}")


@dataclass(slots=True)
class TransactionFilter:
    collector_id: str
    type: Optional[TransactionType] = None
    source: Optional[TransactionSource] = None
    pickup_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    positive_only: bool = False

    def matches(self, transaction: TokenTransaction) -> bool:
        if transaction.collector_id != self.collector_id:
            return False
        if self.type is not None and transaction.type != self.type:
            return False
        if self.source is not None and transaction.source != self.source:
            return False
        if self.pickup_id is not None and transaction.pickup_id != self.pickup_id:
            return False
        if self.start is not None and as_utc(transaction.created_at) < as_utc(self.start):
            return False
        if self.end is not None and as_utc(transaction.created_at) > as_utc(self.end):
            return False
        if self.positive_only and transaction.amount <= 0:
            return False
        return True


class TransactionStore(Protocol):
    def insert(self, transaction: TokenTransaction) -> TokenTransaction: ...

    def find(
        self,
        flt: TransactionFilter,
        *,
        offset: int = 0,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> list[TokenTransaction]: ...

    def find_one(self, flt: TransactionFilter) -> TokenTransaction | None: ...

    def count(self, flt: TransactionFilter) -> int: ...

    def sum_amounts(self, collector_id: str) -> int: ...


def _idempotency_key(transaction: TokenTransaction) -> tuple[str, str] | None:
    if transaction.source is TransactionSource.PICKUP_VERIFICATION and transaction.pickup_id:
        return (transaction.collector_id, transaction.pickup_id)
    return None


class InMemoryTransactionStore:
    """Process-local ledger used when no database is configured and in tests.

    Enforces the same uniqueness rule as the database index: one
    pickup-verification entry per (collector, pickup).
    """

    def __init__(self) -> None:
        self._rows: list[TokenTransaction] = []
        self._keys: dict[tuple[str, str], TokenTransaction] = {}
        self._lock = threading.Lock()

    def insert(self, transaction: TokenTransaction) -> TokenTransaction:
        key = _idempotency_key(transaction)
        with self._lock:
            if key is not None and key in self._keys:
                raise DuplicateTransactionError(key[0], key[1], self._keys[key])
            self._rows.append(transaction)
            if key is not None:
                self._keys[key] = transaction
        return transaction

    def find(
        self,
        flt: TransactionFilter,
        *,
        offset: int = 0,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> list[TokenTransaction]:
        with self._lock:
            # Insertion order doubles as the tie-break for equal timestamps.
            indexed = [(as_utc(row.created_at), seq, row) for seq, row in enumerate(self._rows) if flt.matches(row)]
        indexed.sort(key=lambda item: (item[0], item[1]), reverse=newest_first)
        rows = [row for _, _, row in indexed]
        end = None if limit is None else offset + limit
        return rows[offset:end]

    def find_one(self, flt: TransactionFilter) -> TokenTransaction | None:
        rows = self.find(flt, limit=1, newest_first=False)
        return rows[0] if rows else None

    def count(self, flt: TransactionFilter) -> int:
        with self._lock:
            return sum(1 for row in self._rows if flt.matches(row))

    def sum_amounts(self, collector_id: str) -> int:
        with self._lock:
            return sum(row.amount for row in self._rows if row.collector_id == collector_id)


def transaction_to_row(transaction: TokenTransaction) -> dict[str, Any]:
    return {
        "id": transaction.transaction_id,
        "collector_id": transaction.collector_id,
        "amount": transaction.amount,
        "type": transaction.type.value,
        "source": transaction.source.value,
        "pickup_id": transaction.pickup_id,
        "description": transaction.description,
        "metadata": metadata_to_dict(transaction.metadata),
        "balance_after": transaction.balance_after,
        "created_at": transaction.created_at.isoformat(),
    }


def row_to_transaction(row: dict[str, Any]) -> TokenTransaction:
    created_at = row.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    return TokenTransaction(
        transaction_id=str(row["id"]),
        collector_id=str(row["collector_id"]),
        amount=int(row["amount"]),
        type=TransactionType(row["type"]),
        source=TransactionSource(row["source"]),
        description=row.get("description") or "",
        balance_after=int(row.get("balance_after") or 0),
        created_at=created_at,
        pickup_id=row.get("pickup_id"),
        metadata=metadata_from_dict(row.get("metadata")),
    )


class SupabaseTransactionStore:
    """Ledger backed by the ``token_transactions`` table.

    The table carries a partial unique index on ``(collector_id, pickup_id)``
    where ``source = 'pickup_verification'``; a violation surfaces here as
    :class:`DuplicateTransactionError`. PostgREST truncates every response to
    its ``max-rows`` setting, so reads are fetched page by page.
    """

    def __init__(self, client: Any, table: str | None = None, page_size: int | None = None) -> None:
        self.client = client
        self.table = table or settings.transactions_table
        self.page_size = page_size or settings.supabase_max_rows

    def _apply_filter(self, query: Any, flt: TransactionFilter) -> Any:
        query = query.eq("collector_id", flt.collector_id)
        if flt.type is not None:
            query = query.eq("type", flt.type.value)
        if flt.source is not None:
            query = query.eq("source", flt.source.value)
        if flt.pickup_id is not None:
            query = query.eq("pickup_id", flt.pickup_id)
        if flt.start is not None:
            query = query.gte("created_at", as_utc(flt.start).isoformat())
        if flt.end is not None:
            query = query.lte("created_at", as_utc(flt.end).isoformat())
        if flt.positive_only:
            query = query.gt("amount", 0)
        return query

    def _fetch_pages(self, build_query: Callable[[], Any], start: int = 0, stop: int | None = None) -> list[dict]:
        """Rows ``[start, stop)`` of ``build_query()``, one ``range`` request per page.

        A page shorter than requested marks the end of the result set.
        """
        rows: list[dict] = []
        position = start
        while stop is None or position < stop:
            end = position + self.page_size
            if stop is not None:
                end = min(end, stop)
            batch = build_query().range(position, end - 1).execute().data or []
            rows.extend(batch)
            if len(batch) < end - position:
                break
            position = end
        return rows

    def insert(self, transaction: TokenTransaction) -> TokenTransaction:
        try:
            self.client.table(self.table).insert(transaction_to_row(transaction)).execute()
        except APIError as exc:
            key = _idempotency_key(transaction)
            if exc.code == UNIQUE_VIOLATION and key is not None:
                existing = self.find_one(
                    TransactionFilter(
                        collector_id=key[0],
                        pickup_id=key[1],
                        source=TransactionSource.PICKUP_VERIFICATION,
                    )
                )
                raise DuplicateTransactionError(key[0], key[1], existing) from exc
            logging.error(f"Failed to insert token transaction for {transaction.collector_id}: {exc}")
            raise LedgerError(f"Failed to record token transaction: {exc}") from exc
        return transaction

    def find(
        self,
        flt: TransactionFilter,
        *,
        offset: int = 0,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> list[TokenTransaction]:
        def build_query() -> Any:
            query = self._apply_filter(self.client.table(self.table).select("*"), flt)
            # id breaks created_at ties so consecutive pages neither overlap nor skip rows.
            return query.order("created_at", desc=newest_first).order("id", desc=newest_first)

        stop = None if limit is None else offset + limit
        try:
            rows = self._fetch_pages(build_query, offset, stop)
        except APIError as exc:
            raise LedgerError(f"Failed to query token transactions: {exc}") from exc
        return [row_to_transaction(row) for row in rows]

    def find_one(self, flt: TransactionFilter) -> TokenTransaction | None:
        rows = self.find(flt, limit=1, newest_first=False)
        return rows[0] if rows else None

    def count(self, flt: TransactionFilter) -> int:
        try:
            query = self._apply_filter(self.client.table(self.table).select("id", count="exact"), flt)
            response = query.limit(1).execute()
        except APIError as exc:
            raise LedgerError(f"Failed to count token transactions: {exc}") from exc
        return int(response.count or 0)

    def sum_amounts(self, collector_id: str) -> int:
        def build_query() -> Any:
            return self.client.table(self.table).select("id, amount").eq("collector_id", collector_id).order("id")

        try:
            rows = self._fetch_pages(build_query)
        except APIError as exc:
            raise LedgerError(f"Failed to sum token transactions for {collector_id}: {exc}") from exc
        return sum(int(row.get("amount") or 0) for row in rows)
