"""GeoJSON export of optimised routes for map overlays."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from ...models.domain import Coordinates
from ..routing.models import OptimizedRoute

ROUTE_COLOR = "#16a34a"


def route_to_feature_collection(origin: Coordinates, route: OptimizedRoute) -> Dict[str, Any]:
    """Build a FeatureCollection with the travelled path and one point per stop.

    Coordinates stay in GeoJSON (lon, lat) order, which matches the waypoint model.
    """
    features: List[Dict[str, Any]] = []

    path = [list(origin)] + [list(wp.coordinates) for wp in route.waypoints]
    if len(path) >= 2:
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": path},
                "properties": {
                    "kind": "route",
                    "strategy": route.strategy.value,
                    "total_distance_m": route.total_distance,
                    "total_duration_s": route.total_duration,
                    "color": ROUTE_COLOR,
                },
            }
        )

    features.append(
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": list(origin)},
            "properties": {"kind": "origin"},
        }
    )

    for sequence, waypoint in enumerate(route.waypoints, start=1):
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": list(waypoint.coordinates)},
                "properties": {
                    "kind": "stop",
                    "sequence": sequence,
                    "waypoint_id": waypoint.id,
                    "address": waypoint.address,
                    "weight": waypoint.weight,
                    "value": waypoint.estimated_value,
                },
            }
        )

    return {"type": "FeatureCollection", "features": features}


def save_geojson(feature_collection: Dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(feature_collection, handle, ensure_ascii=False, indent=2)
