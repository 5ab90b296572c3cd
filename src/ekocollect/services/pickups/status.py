"""Pickup status transitions and the token processing they trigger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ...models.domain import PickupStatus, StatusChange
from ...persistence.pickups import PickupNotFoundError
from ...persistence.transactions import LedgerError
from ..tokens.calculator import AchievedMilestone
from ..tokens.ledger import TokenLedger
from ..tokens.service import get_token_ledger


@dataclass(slots=True)
class StatusUpdateResult:
    pickup_id: str
    old_status: PickupStatus
    new_status: PickupStatus
    tokens_awarded: Optional[int] = None
    milestones_awarded: tuple[AchievedMilestone, ...] = ()
    token_error: Optional[str] = None


def update_pickup_status(
    pickup_id: str,
    new_status: PickupStatus | str,
    changed_by: str | None = None,
    notes: str | None = None,
    ledger: TokenLedger | None = None,
) -> StatusUpdateResult:
    """Record a status change and reward the pickup when it first becomes verified.

    The status write stands even if token processing fails; the failure is
    logged and returned in ``token_error`` so the award can be retried later
    (processing is idempotent per pickup).
    """
    ledger = ledger or get_token_ledger()
    new_status = PickupStatus(new_status)

    pickup = ledger.pickups.get(pickup_id)
    if pickup is None:
        raise PickupNotFoundError(pickup_id)

    old_status = pickup.status
    pickup.status = new_status
    pickup.status_history.append(
        StatusChange(
            status=new_status,
            timestamp=datetime.now(timezone.utc),
            changed_by=changed_by or "system",
            notes=notes,
        )
    )
    ledger.pickups.save(pickup)

    result = StatusUpdateResult(pickup_id=pickup_id, old_status=old_status, new_status=new_status)
    if old_status == PickupStatus.VERIFIED or new_status != PickupStatus.VERIFIED:
        return result

    logging.info(
        f"Pickup {pickup_id} verified (was {PickupStatus(old_status).value}); processing tokens for {pickup.collector_id}"
    )
    try:
        tokens = ledger.process_pickup_tokens(pickup_id, pickup.collector_id)
    except LedgerError as exc:
        logging.error(f"Token processing failed for pickup {pickup_id}; retry out-of-band: {exc}")
        result.token_error = str(exc)
        return result

    result.tokens_awarded = tokens.tokens_awarded
    result.milestones_awarded = tuple(tokens.milestones_awarded)
    return result
