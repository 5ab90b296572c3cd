"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from ...models.domain import Waypoint


class RouteStrategy(str, Enum):
    NEAREST = "nearest"
    WEIGHTED = "weighted"
    BALANCED = "balanced"


@dataclass(slots=True)
class RouteSummary:
    total_stops: int = 0
    total_weight: float = 0.0
    average_distance: float = 0.0


@dataclass(slots=True)
class OptimizedRoute:
    waypoints: List[Waypoint] = field(default_factory=list)
    total_distance: float = 0.0
    total_duration: float = 0.0
    estimated_value: float = 0.0
    route_order: List[int] = field(default_factory=list)
    summary: RouteSummary = field(default_factory=RouteSummary)
    # Strategy actually applied; differs from the request when "balanced" dispatches.
    strategy: RouteStrategy = RouteStrategy.BALANCED
