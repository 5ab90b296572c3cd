"""Pickup status API schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import PickupStatus
from .tokens import MilestoneModel


class PickupStatusRequest(BaseModel):
    status: PickupStatus
    changed_by: Optional[str] = Field(default=None, description="Reviewer or system making the change.")
    notes: Optional[str] = None


class PickupStatusResponse(BaseModel):
    pickup_id: str
    old_status: PickupStatus
    new_status: PickupStatus
    tokens_awarded: Optional[int] = None
    milestones_awarded: List[MilestoneModel] = Field(default_factory=list)
    token_error: Optional[str] = None
