"""Domain models for collection waypoints, pickups and token ledger entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

# (longitude, latitude) in WGS84 degrees
Coordinates = tuple[float, float]

VALUE_PER_KG = 30.0


class PlasticCategory(str, Enum):
    PET = "PET"
    HDPE = "HDPE"
    LDPE = "LDPE"
    PP = "PP"
    PS = "PS"
    OTHER = "Other"


class PickupStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    PAID = "paid"


# Statuses counted towards milestone progress.
VERIFIED_STATUSES: tuple[PickupStatus, ...] = (PickupStatus.VERIFIED, PickupStatus.PAID)


class TransactionType(str, Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    BONUS = "bonus"
    PENALTY = "penalty"
    EXPIRED = "expired"


class TransactionSource(str, Enum):
    PICKUP_VERIFICATION = "pickup_verification"
    MILESTONE = "milestone"
    REFERRAL = "referral"
    REDEMPTION = "redemption"
    BONUS = "bonus"
    PENALTY = "penalty"


@dataclass(slots=True)
class Waypoint:
    """A candidate collection stop with an estimated recoverable weight."""

    id: str
    coordinates: Coordinates
    address: str = ""
    weight: float = 0.0
    value: Optional[float] = None
    category: Optional[str] = None
    status: Optional[str] = None

    @property
    def estimated_value(self) -> float:
        if self.value is not None:
            return self.value
        return self.weight * VALUE_PER_KG


@dataclass(slots=True)
class PickupVerification:
    ai_confidence: Optional[float] = None
    manual_review: bool = False


@dataclass(slots=True)
class StatusChange:
    status: PickupStatus
    timestamp: datetime
    changed_by: str = "system"
    notes: Optional[str] = None


@dataclass(slots=True)
class Pickup:
    """A logged plastic pickup as seen by the reward engine."""

    pickup_id: str
    collector_id: str
    category: PlasticCategory
    estimated_weight: float
    status: PickupStatus = PickupStatus.PENDING
    actual_weight: Optional[float] = None
    verification: Optional[PickupVerification] = None
    has_after_photo: bool = False
    status_history: list[StatusChange] = field(default_factory=list)

    @property
    def effective_weight(self) -> float:
        """Actual weight when it has been recorded, otherwise the estimate."""
        return self.actual_weight or self.estimated_weight


@dataclass(slots=True, frozen=True)
class PickupMetadata:
    pickup_id: str
    category: str
    weight: float
    ai_confidence: Optional[float] = None
    breakdown: tuple[str, ...] = ()
    kind: Literal["pickup"] = "pickup"


@dataclass(slots=True, frozen=True)
class MilestoneMetadata:
    milestone: str
    description: str
    kind: Literal["milestone"] = "milestone"


@dataclass(slots=True, frozen=True)
class BonusMetadata:
    reason: str
    kind: Literal["bonus"] = "bonus"


TransactionMetadata = Union[PickupMetadata, MilestoneMetadata, BonusMetadata]

METADATA_FOR_SOURCE: dict[TransactionSource, type] = {
    TransactionSource.PICKUP_VERIFICATION: PickupMetadata,
    TransactionSource.MILESTONE: MilestoneMetadata,
    TransactionSource.REFERRAL: BonusMetadata,
    TransactionSource.REDEMPTION: BonusMetadata,
    TransactionSource.BONUS: BonusMetadata,
    TransactionSource.PENALTY: BonusMetadata,
}


def metadata_to_dict(metadata: TransactionMetadata | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    if isinstance(metadata, PickupMetadata):
        return {
            "kind": metadata.kind,
            "pickup_id": metadata.pickup_id,
            "category": metadata.category,
            "weight": metadata.weight,
            "ai_confidence": metadata.ai_confidence,
            "breakdown": list(metadata.breakdown),
        }
    if isinstance(metadata, MilestoneMetadata):
        return {"kind": metadata.kind, "milestone": metadata.milestone, "description": metadata.description}
    return {"kind": metadata.kind, "reason": metadata.reason}


def metadata_from_dict(data: dict[str, Any] | None) -> TransactionMetadata | None:
    """Rebuild a metadata variant from its stored ``kind``-tagged form."""
    if not data:
        return None
    kind = data.get("kind")
    if kind == "pickup":
        return PickupMetadata(
            pickup_id=str(data.get("pickup_id", "")),
            category=str(data.get("category", "")),
            weight=float(data.get("weight") or 0.0),
            ai_confidence=data.get("ai_confidence"),
            breakdown=tuple(data.get("breakdown") or ()),
        )
    if kind == "milestone":
        return MilestoneMetadata(milestone=str(data.get("milestone", "")), description=str(data.get("description", "")))
    if kind == "bonus":
        return BonusMetadata(reason=str(data.get("reason", "")))
    raise ValueError(f"Unknown transaction metadata kind: {kind!r}")


@dataclass(slots=True, frozen=True)
class TokenTransaction:
    """One immutable ledger entry."""

    transaction_id: str
    collector_id: str
    amount: int
    type: TransactionType
    source: TransactionSource
    description: str
    balance_after: int
    created_at: datetime
    pickup_id: Optional[str] = None
    metadata: Optional[TransactionMetadata] = None
