"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import Point, Polygon

from ..models.domain import Coordinates

EARTH_RADIUS_M = 6371000.0


def haversine_m(coord1: Coordinates, coord2: Coordinates) -> float:
    """Great-circle distance in metres between two (lon, lat) pairs."""

    lon1, lat1 = coord1
    lon2, lat2 = coord2

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_valid_coordinate(coord: Sequence[float]) -> bool:
    if len(coord) != 2:
        return False
    lon, lat = coord
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (lon, lat)):
        return False
    return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0


def point_in_polygon(coord: Coordinates, polygon_coords: Sequence[Coordinates]) -> bool:
    """Return True if the (lon, lat) point is inside the polygon of (lon, lat) vertices."""

    polygon = Polygon(list(polygon_coords))
    return polygon.contains(Point(coord))
