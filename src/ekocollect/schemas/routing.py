"""Routing request/response schemas."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..services.routing.models import RouteStrategy


class WaypointLocationModel(BaseModel):
    coordinates: Optional[List[float]] = Field(default=None, description="[lng, lat] pair")
    address: Optional[str] = None


class EstimatedAvailableModel(BaseModel):
    total_weight: Optional[float] = None


class WaypointInputModel(BaseModel):
    """Loosely typed on purpose: structural problems are reported per index by validation."""

    id: Optional[str] = None
    location: Optional[WaypointLocationModel] = None
    coordinates: Optional[List[float]] = None
    address: Optional[str] = None
    weight: Optional[float] = None
    value: Optional[float] = None
    estimated_available: Optional[EstimatedAvailableModel] = None
    category: Optional[str] = None
    status: Optional[str] = None


class RouteOptimizationRequest(BaseModel):
    origin: List[float] = Field(..., description="Route start as [lng, lat].")
    waypoints: List[WaypointInputModel]
    strategy: RouteStrategy = RouteStrategy.BALANCED
    radius_m: Optional[float] = Field(
        default=None, gt=0, description="Drop candidates further than this from the origin."
    )
    service_area: Optional[List[List[float]]] = Field(
        default=None, description="Polygon of [lng, lat] vertices; candidates outside are dropped."
    )
    persist: bool = False
    requested_by: Optional[str] = Field(default=None, description="Person or system requesting the run.")


class RouteWaypointModel(BaseModel):
    id: str
    coordinates: List[float]
    address: str
    weight: float
    value: float
    category: Optional[str] = None
    status: Optional[str] = None


class RouteSummaryModel(BaseModel):
    total_stops: int
    total_weight: float
    average_distance: float


class OptimizedRouteModel(BaseModel):
    waypoints: List[RouteWaypointModel]
    total_distance: float
    total_duration: float
    estimated_value: float
    route_order: List[int]
    summary: RouteSummaryModel
    strategy: RouteStrategy


class RouteOptimizationResponse(BaseModel):
    route: OptimizedRouteModel
    directions_waypoints: str
    metadata: dict[str, Any]
