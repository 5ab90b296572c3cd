"""Serializers for optimised route outputs."""

from __future__ import annotations

import csv
import io

from ...models.domain import Coordinates, Waypoint
from ..geospatial import haversine_m
from ..routing.models import OptimizedRoute


def waypoint_to_json(waypoint: Waypoint) -> dict:
    return {
        "id": waypoint.id,
        "coordinates": list(waypoint.coordinates),
        "address": waypoint.address,
        "weight": waypoint.weight,
        "value": waypoint.estimated_value,
        "category": waypoint.category,
        "status": waypoint.status,
    }


def route_to_json(route: OptimizedRoute) -> dict:
    return {
        "waypoints": [waypoint_to_json(wp) for wp in route.waypoints],
        "total_distance": route.total_distance,
        "total_duration": route.total_duration,
        "estimated_value": route.estimated_value,
        "route_order": list(route.route_order),
        "summary": {
            "total_stops": route.summary.total_stops,
            "total_weight": route.summary.total_weight,
            "average_distance": route.summary.average_distance,
        },
        "strategy": route.strategy.value,
    }


def route_to_csv(origin: Coordinates, route: OptimizedRoute) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "waypoint_id",
        "input_index",
        "longitude",
        "latitude",
        "address",
        "weight",
        "value",
        "distance_from_prev_m",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    previous = origin
    for sequence, (input_index, waypoint) in enumerate(zip(route.route_order, route.waypoints), start=1):
        writer.writerow(
            {
                "sequence": sequence,
                "waypoint_id": waypoint.id,
                "input_index": input_index,
                "longitude": waypoint.coordinates[0],
                "latitude": waypoint.coordinates[1],
                "address": waypoint.address,
                "weight": waypoint.weight,
                "value": waypoint.estimated_value,
                "distance_from_prev_m": round(haversine_m(previous, waypoint.coordinates), 1),
            }
        )
        previous = waypoint.coordinates
    return buffer.getvalue()
