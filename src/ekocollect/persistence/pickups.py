"""Pickup records as consumed by the reward engine."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Protocol

from postgrest.exceptions import APIError

from ..config import settings
from ..models.domain import (
    VERIFIED_STATUSES,
    Pickup,
    PickupStatus,
    PickupVerification,
    PlasticCategory,
    StatusChange,
)
from .transactions import LedgerError


class PickupNotFoundError(LookupError):
    def __init__(self, pickup_id: str) -> None:
        self.pickup_id = pickup_id
        super().__init__(f"Pickup not found: {pickup_id}")


class PickupRepository(Protocol):
    def get(self, pickup_id: str) -> Pickup | None: ...

    def save(self, pickup: Pickup) -> None: ...

    def count_verified(self, collector_id: str) -> int: ...


class InMemoryPickupRepository:
    def __init__(self) -> None:
        self._pickups: dict[str, Pickup] = {}
        self._lock = threading.Lock()

    def get(self, pickup_id: str) -> Pickup | None:
        with self._lock:
            return self._pickups.get(pickup_id)

    def save(self, pickup: Pickup) -> None:
        with self._lock:
            self._pickups[pickup.pickup_id] = pickup

    def count_verified(self, collector_id: str) -> int:
        with self._lock:
            return sum(
                1
                for pickup in self._pickups.values()
                if pickup.collector_id == collector_id and pickup.status in VERIFIED_STATUSES
            )


def row_to_pickup(row: dict[str, Any]) -> Pickup:
    verification = row.get("verification") or None
    photos = row.get("photos") or {}
    history = []
    for entry in row.get("status_history") or []:
        timestamp = entry.get("timestamp")
        history.append(
            StatusChange(
                status=PickupStatus(entry["status"]),
                timestamp=datetime.fromisoformat(timestamp) if isinstance(timestamp, str) else timestamp,
                changed_by=entry.get("changed_by") or "system",
                notes=entry.get("notes"),
            )
        )
    try:
        category = PlasticCategory(row.get("category"))
    except ValueError:
        category = PlasticCategory.OTHER
    return Pickup(
        pickup_id=str(row["id"]),
        collector_id=str(row["collector_id"]),
        category=category,
        estimated_weight=float(row.get("estimated_weight") or 0.0),
        status=PickupStatus(row.get("status") or PickupStatus.PENDING.value),
        actual_weight=row.get("actual_weight"),
        verification=PickupVerification(
            ai_confidence=verification.get("ai_confidence"),
            manual_review=bool(verification.get("manual_review")),
        )
        if verification
        else None,
        has_after_photo=bool(photos.get("after")),
        status_history=history,
    )


class SupabasePickupRepository:
    """Reads pickups from the ``pickups`` table; only status fields are written back."""

    def __init__(self, client: Any, table: str | None = None) -> None:
        self.client = client
        self.table = table or settings.pickups_table

    def get(self, pickup_id: str) -> Pickup | None:
        try:
            response = self.client.table(self.table).select("*").eq("id", pickup_id).limit(1).execute()
        except APIError as exc:
            raise LedgerError(f"Failed to load pickup {pickup_id}: {exc}") from exc
        rows = response.data or []
        return row_to_pickup(rows[0]) if rows else None

    def save(self, pickup: Pickup) -> None:
        history = [
            {
                "status": change.status.value,
                "timestamp": change.timestamp.isoformat(),
                "changed_by": change.changed_by,
                "notes": change.notes,
            }
            for change in pickup.status_history
        ]
        try:
            self.client.table(self.table).update(
                {"status": pickup.status.value, "status_history": history}
            ).eq("id", pickup.pickup_id).execute()
        except APIError as exc:
            raise LedgerError(f"Failed to update pickup {pickup.pickup_id}: {exc}") from exc

    def count_verified(self, collector_id: str) -> int:
        try:
            response = (
                self.client.table(self.table)
                .select("id", count="exact")
                .eq("collector_id", collector_id)
                .in_("status", [status.value for status in VERIFIED_STATUSES])
                .limit(1)
                .execute()
            )
        except APIError as exc:
            raise LedgerError(f"Failed to count verified pickups for {collector_id}: {exc}") from exc
        return int(response.count or 0)
