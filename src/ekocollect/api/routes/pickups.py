"""Pickup status endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...persistence.pickups import PickupNotFoundError
from ...persistence.transactions import LedgerError
from ...schemas.pickups import PickupStatusRequest, PickupStatusResponse
from ...schemas.tokens import MilestoneModel
from ...services.pickups.status import update_pickup_status

router = APIRouter(prefix="/pickups", tags=["pickups"])


@router.post("/{pickup_id}/status", response_model=PickupStatusResponse, status_code=status.HTTP_200_OK)
def change_status(pickup_id: str, payload: PickupStatusRequest) -> PickupStatusResponse:
    """Move a pickup to a new status; becoming verified awards its tokens."""
    try:
        result = update_pickup_status(
            pickup_id,
            payload.status,
            changed_by=payload.changed_by,
            notes=payload.notes,
        )
    except PickupNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except LedgerError as exc:
        logging.exception(f"Error updating pickup {pickup_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update pickup status: {str(exc)}",
        ) from exc

    return PickupStatusResponse(
        pickup_id=result.pickup_id,
        old_status=result.old_status,
        new_status=result.new_status,
        tokens_awarded=result.tokens_awarded,
        milestones_awarded=[
            MilestoneModel(milestone=m.milestone, tokens=m.tokens, description=m.description)
            for m in result.milestones_awarded
        ],
        token_error=result.token_error,
    )
