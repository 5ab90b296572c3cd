"""Greedy route ordering for collection waypoints.

Both strategies are heuristics with fixed, reproducible tie-break rules.
They are not exact travelling-salesman solvers and are not meant to be:
the visiting order must be reproducible from the documented formulas.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from ...config import settings
from ...models.domain import Coordinates, Waypoint
from ..geospatial import haversine_m
from .models import OptimizedRoute, RouteStrategy, RouteSummary

# 8333 m per hour is roughly 30 km/h of effective urban travel speed.
AVERAGE_SPEED_M_PER_HOUR = 8333.0
STOP_DWELL_SECONDS = 300.0
# Heavier stops look closer by 5% per estimated kilogram.
WEIGHT_PRIORITY_FACTOR = 0.05
LOOKAHEAD_DISTANCE_RATIO = 1.5


def estimate_duration_seconds(total_distance_m: float, stop_count: int) -> float:
    return (total_distance_m / AVERAGE_SPEED_M_PER_HOUR) * 3600 + stop_count * STOP_DWELL_SECONDS


def _empty_route(strategy: RouteStrategy) -> OptimizedRoute:
    return OptimizedRoute(strategy=strategy)


def _build_route(
    waypoints: Sequence[Waypoint],
    route_order: list[int],
    total_distance: float,
    strategy: RouteStrategy,
) -> OptimizedRoute:
    ordered = [waypoints[idx] for idx in route_order]
    stop_count = len(route_order)
    return OptimizedRoute(
        waypoints=ordered,
        total_distance=total_distance,
        total_duration=estimate_duration_seconds(total_distance, stop_count),
        estimated_value=sum(wp.estimated_value for wp in ordered),
        route_order=route_order,
        summary=RouteSummary(
            total_stops=stop_count,
            total_weight=sum(wp.weight for wp in ordered),
            average_distance=total_distance / stop_count if stop_count else 0.0,
        ),
        strategy=strategy,
    )


def _nearest_unvisited(
    position: Coordinates,
    waypoints: Sequence[Waypoint],
    visited: set[int],
    *,
    weight_priority: bool,
) -> tuple[int, float]:
    """Index and raw distance of the closest unvisited waypoint.

    With ``weight_priority`` the comparison uses the weight-adjusted distance.
    Only a strictly smaller candidate replaces the current best, so the first
    one encountered wins ties.
    """
    best_idx = -1
    best_score = math.inf
    best_raw = 0.0
    for idx, waypoint in enumerate(waypoints):
        if idx in visited:
            continue
        raw = haversine_m(position, waypoint.coordinates)
        score = raw * (1 - waypoint.weight * WEIGHT_PRIORITY_FACTOR) if weight_priority else raw
        if score < best_score:
            best_idx, best_score, best_raw = idx, score, raw
    return best_idx, best_raw


def nearest_neighbor(origin: Coordinates, waypoints: Sequence[Waypoint]) -> OptimizedRoute:
    """Greedy tour from ``origin`` always moving to the (weight-nudged) nearest stop."""
    if not waypoints:
        return _empty_route(RouteStrategy.NEAREST)

    visited: set[int] = set()
    route_order: list[int] = []
    position = origin
    total_distance = 0.0

    while len(visited) < len(waypoints):
        idx, raw_distance = _nearest_unvisited(position, waypoints, visited, weight_priority=True)
        if idx == -1:
            break
        visited.add(idx)
        route_order.append(idx)
        total_distance += raw_distance
        position = waypoints[idx].coordinates

    return _build_route(waypoints, route_order, total_distance, RouteStrategy.NEAREST)


def _value_ratio(waypoint: Waypoint) -> float:
    if waypoint.weight <= 0:
        return math.inf if waypoint.estimated_value > 0 else 0.0
    return waypoint.estimated_value / waypoint.weight


def weighted_optimization(origin: Coordinates, waypoints: Sequence[Waypoint]) -> OptimizedRoute:
    """Visit stops by descending value/weight ratio with a look-ahead for nearby higher-value stops.

    A candidate is skipped while some other unvisited stop has a strictly higher
    value and lies within 1.5x the candidate's distance from the current
    position. Whatever the ranked pass leaves behind is appended by plain
    nearest-neighbour from the last position.
    """
    if not waypoints:
        return _empty_route(RouteStrategy.WEIGHTED)

    ranked = sorted(range(len(waypoints)), key=lambda i: _value_ratio(waypoints[i]), reverse=True)

    visited: set[int] = set()
    route_order: list[int] = []
    position = origin
    total_distance = 0.0

    for idx in ranked:
        if idx in visited:
            continue
        candidate = waypoints[idx]
        distance = haversine_m(position, candidate.coordinates)
        value = candidate.estimated_value

        deferred = False
        for other_idx in ranked:
            if other_idx in visited or other_idx == idx:
                continue
            other = waypoints[other_idx]
            if other.estimated_value > value:
                if haversine_m(position, other.coordinates) < distance * LOOKAHEAD_DISTANCE_RATIO:
                    deferred = True
                    break

        if not deferred:
            visited.add(idx)
            route_order.append(idx)
            total_distance += distance
            position = candidate.coordinates

    while len(visited) < len(waypoints):
        idx, raw_distance = _nearest_unvisited(position, waypoints, visited, weight_priority=False)
        if idx == -1:
            break
        visited.add(idx)
        route_order.append(idx)
        total_distance += raw_distance
        position = waypoints[idx].coordinates

    return _build_route(waypoints, route_order, total_distance, RouteStrategy.WEIGHTED)


def optimize_route(
    origin: Coordinates,
    waypoints: Sequence[Waypoint],
    strategy: RouteStrategy | str = RouteStrategy.BALANCED,
) -> OptimizedRoute:
    """Order ``waypoints`` into a visiting sequence starting at ``origin``.

    Only the first ``settings.max_route_waypoints`` entries are routed; callers
    pre-filter larger candidate sets. ``balanced`` picks the weighted strategy
    when the mean stop value exceeds ``settings.balanced_value_threshold``.
    """
    strategy = RouteStrategy(strategy)
    logging.info(
        f"Optimizing route from {origin} over {len(waypoints)} waypoints using '{strategy.value}' strategy"
    )

    if not waypoints:
        return _empty_route(strategy)

    limited = list(waypoints[: settings.max_route_waypoints])
    if len(limited) < len(waypoints):
        logging.warning(
            f"Route request truncated from {len(waypoints)} to {len(limited)} waypoints"
        )

    if strategy is RouteStrategy.NEAREST:
        return nearest_neighbor(origin, limited)
    if strategy is RouteStrategy.WEIGHTED:
        return weighted_optimization(origin, limited)

    average_value = sum(wp.estimated_value for wp in limited) / len(limited)
    if average_value > settings.balanced_value_threshold:
        return weighted_optimization(origin, limited)
    return nearest_neighbor(origin, limited)


def format_waypoints_for_directions(waypoints: Sequence[Waypoint]) -> str:
    """Render stops as the ``lat,lng|lat,lng`` list directions APIs expect."""
    return "|".join(f"{wp.coordinates[1]},{wp.coordinates[0]}" for wp in waypoints)
