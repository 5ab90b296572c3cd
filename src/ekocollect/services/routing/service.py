"""Routing orchestration service."""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import Coordinates, Waypoint
from ...persistence.filesystem import RouteOutputStorage
from ...schemas.routing import (
    OptimizedRouteModel,
    RouteOptimizationRequest,
    RouteOptimizationResponse,
)
from ..export.geojson import route_to_feature_collection, save_geojson
from ..geospatial import haversine_m, is_valid_coordinate, point_in_polygon
from ..outputs.routing_formatter import route_to_csv, route_to_json
from .optimizer import format_waypoints_for_directions, optimize_route
from .validation import validate_waypoints


def nearby_waypoints(
    origin: Coordinates,
    candidates: Sequence[Waypoint],
    *,
    radius_m: float | None = None,
    service_area: Sequence[Coordinates] | None = None,
) -> list[Waypoint]:
    """Keep candidates within ``radius_m`` of the origin and inside ``service_area``.

    Input order is preserved so the optimizer's 25-stop cap still keeps the
    caller's highest-priority candidates.
    """
    if service_area is not None and len(service_area) < 3:
        raise ValueError("Service area polygon needs at least 3 vertices.")

    selected: list[Waypoint] = []
    for waypoint in candidates:
        if radius_m is not None and haversine_m(origin, waypoint.coordinates) > radius_m:
            continue
        if service_area is not None and not point_in_polygon(waypoint.coordinates, service_area):
            continue
        selected.append(waypoint)
    return selected


def optimize_collection_route(payload: RouteOptimizationRequest) -> RouteOptimizationResponse:
    if not is_valid_coordinate(payload.origin):
        raise ValueError("Origin coordinates [lng, lat] are required")
    origin: Coordinates = (float(payload.origin[0]), float(payload.origin[1]))

    if not payload.waypoints:
        raise ValueError("At least one waypoint is required")

    waypoints = validate_waypoints([wp.model_dump() for wp in payload.waypoints])

    filtered = payload.radius_m is not None or payload.service_area is not None
    input_index = {id(wp): index for index, wp in enumerate(waypoints)}
    if filtered:
        service_area = [(float(v[0]), float(v[1])) for v in payload.service_area] if payload.service_area else None
        before = len(waypoints)
        waypoints = nearby_waypoints(origin, waypoints, radius_m=payload.radius_m, service_area=service_area)
        logging.info(f"Candidate filter kept {len(waypoints)} of {before} waypoints")

    route = optimize_route(origin, waypoints, payload.strategy)
    if filtered:
        # Report positions in the request, not in the filtered candidate list.
        route.route_order = [input_index[id(wp)] for wp in route.waypoints]

    logging.info(
        f"Route optimized: {route.summary.total_stops} stops, "
        f"{route.total_distance / 1000:.2f} km, strategy={route.strategy.value} "
        f"(requested {payload.strategy.value})"
    )

    route_json = route_to_json(route)
    overlay = route_to_feature_collection(origin, route)
    metadata: dict = {
        "requested_strategy": payload.strategy.value,
        "applied_strategy": route.strategy.value,
        "candidate_count": len(payload.waypoints),
        "routed_count": route.summary.total_stops,
        "map_overlay": overlay,
    }
    if payload.requested_by:
        metadata["author"] = payload.requested_by

    if payload.persist:
        run_dir = RouteOutputStorage().save_run({"origin": list(origin), **route_json}, route_to_csv(origin, route))
        try:
            save_geojson(overlay, run_dir / "route.geojson")
        except OSError as exc:
            logging.warning(f"Failed to write GeoJSON export: {exc}")
        metadata["output_dir"] = str(run_dir)

    return RouteOptimizationResponse(
        route=OptimizedRouteModel(**route_json),
        directions_waypoints=format_waypoints_for_directions(route.waypoints),
        metadata=metadata,
    )
