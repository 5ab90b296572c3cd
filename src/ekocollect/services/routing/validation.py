"""Caller-side validation of raw waypoint records before optimisation."""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

from ...models.domain import Waypoint
from ..geospatial import is_valid_coordinate


class WaypointValidationError(ValueError):
    """Raised for the first waypoint record that cannot be routed."""

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Waypoint {index}: {reason}")


def _extract_coordinates(record: Mapping[str, Any]) -> Any:
    location = record.get("location")
    if isinstance(location, Mapping) and location.get("coordinates") is not None:
        return location.get("coordinates")
    return record.get("coordinates")


def _extract_weight(record: Mapping[str, Any]) -> Any:
    weight = record.get("weight")
    if weight:
        return weight
    available = record.get("estimated_available")
    if isinstance(available, Mapping) and available.get("total_weight"):
        return available.get("total_weight")
    return 0.0


def validate_waypoint(index: int, record: Mapping[str, Any]) -> Waypoint:
    coordinates = _extract_coordinates(record)
    if coordinates is None:
        raise WaypointValidationError(index, "missing location coordinates")
    if not isinstance(coordinates, (list, tuple)) or not is_valid_coordinate(coordinates):
        raise WaypointValidationError(index, f"invalid [lng, lat] coordinates {coordinates!r}")

    try:
        weight = float(_extract_weight(record))
    except (TypeError, ValueError) as exc:
        raise WaypointValidationError(index, "weight must be numeric") from exc
    if not math.isfinite(weight):
        raise WaypointValidationError(index, "weight must be a finite number")
    if weight < 0:
        raise WaypointValidationError(index, "weight must not be negative")

    value = record.get("value")
    if value is not None:
        try:
            value = float(value)
        except (TypeError, ValueError) as exc:
            raise WaypointValidationError(index, "value must be numeric") from exc
        if not math.isfinite(value):
            raise WaypointValidationError(index, "value must be a finite number")

    location = record.get("location") if isinstance(record.get("location"), Mapping) else {}
    address = location.get("address") or record.get("address") or "Unknown address"

    return Waypoint(
        id=str(record.get("id") or f"wp-{index}"),
        coordinates=(float(coordinates[0]), float(coordinates[1])),
        address=str(address),
        weight=weight,
        value=value,
        category=record.get("category"),
        status=record.get("status"),
    )


def validate_waypoints(records: Sequence[Mapping[str, Any]]) -> list[Waypoint]:
    return [validate_waypoint(index, record) for index, record in enumerate(records)]
