from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.ekocollect.main import create_app
from src.ekocollect.models.domain import PickupStatus
from src.ekocollect.schemas.routing import RouteOptimizationRequest, WaypointInputModel, WaypointLocationModel
from src.ekocollect.services.tokens.ledger import TokenLedger

ORIGIN = [3.3792, 6.5244]


def _waypoint(wid: str, lon: float, lat: float, weight: float = 1.0) -> WaypointInputModel:
    return WaypointInputModel(
        id=wid,
        location=WaypointLocationModel(coordinates=[lon, lat], address=f"Stop {wid}"),
        weight=weight,
    )


@pytest.fixture
def api_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, ledger: TokenLedger) -> TestClient:
    app = create_app()
    client = TestClient(app)

    # keep route exports in tmpdir and the ledger in memory
    from src.ekocollect.api.routes import tokens as tokens_routes
    from src.ekocollect.db import supabase as supabase_module
    from src.ekocollect.persistence.filesystem import RouteOutputStorage
    from src.ekocollect.services.pickups import status as status_service
    from src.ekocollect.services.routing import service as routing_service

    monkeypatch.setattr(routing_service, "RouteOutputStorage", lambda: RouteOutputStorage(root=tmp_path))
    monkeypatch.setattr(tokens_routes, "get_token_ledger", lambda: ledger)
    monkeypatch.setattr(status_service, "get_token_ledger", lambda: ledger)
    monkeypatch.setattr(supabase_module, "get_supabase_client", lambda: None)

    return client


def test_root_and_health(api_client: TestClient) -> None:
    root = api_client.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "running"

    assert api_client.get("/api/health").json() == {"status": "ok"}

    database = api_client.get("/api/health/database").json()
    assert database["configured"] is False


def test_route_optimize_endpoint(api_client: TestClient) -> None:
    request = RouteOptimizationRequest(
        origin=ORIGIN,
        waypoints=[
            _waypoint("far", 3.4100, 6.5500),
            _waypoint("near", 3.3800, 6.5250),
            _waypoint("mid", 3.3900, 6.5300),
        ],
        strategy="nearest",
    )

    response = api_client.post("/api/routes/optimize", json=request.model_dump(mode="json"))

    assert response.status_code == 200
    payload = response.json()
    route = payload["route"]
    assert route["route_order"] == [1, 2, 0]
    assert [wp["id"] for wp in route["waypoints"]] == ["near", "mid", "far"]
    assert route["summary"]["total_stops"] == 3
    assert route["strategy"] == "nearest"
    assert route["estimated_value"] == pytest.approx(90.0)
    assert payload["directions_waypoints"].startswith("6.525,3.38|")
    assert payload["metadata"]["applied_strategy"] == "nearest"
    assert payload["metadata"]["map_overlay"]["type"] == "FeatureCollection"
    assert "output_dir" not in payload["metadata"]


def test_route_optimize_persists_outputs(api_client: TestClient, tmp_path: Path) -> None:
    request = RouteOptimizationRequest(
        origin=ORIGIN,
        waypoints=[_waypoint("a", 3.3800, 6.5250), _waypoint("b", 3.3900, 6.5300)],
        persist=True,
        requested_by="dispatcher",
    )

    response = api_client.post("/api/routes/optimize", json=request.model_dump(mode="json"))

    assert response.status_code == 200
    assert response.json()["metadata"]["author"] == "dispatcher"
    output_dirs = list((tmp_path / "outputs").glob("routes_*"))
    assert output_dirs
    run_dir = output_dirs[0]
    assert (run_dir / "summary.json").exists()
    assert (run_dir / "stops.csv").exists()
    assert (run_dir / "route.geojson").exists()


def test_route_optimize_radius_filter_reports_request_positions(api_client: TestClient) -> None:
    request = RouteOptimizationRequest(
        origin=ORIGIN,
        waypoints=[
            _waypoint("far", 3.5000, 6.7000),
            _waypoint("mid", 3.3900, 6.5300),
            _waypoint("near", 3.3800, 6.5250),
        ],
        strategy="nearest",
        radius_m=2000,
    )

    response = api_client.post("/api/routes/optimize", json=request.model_dump(mode="json"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["route"]["route_order"] == [2, 1]
    assert payload["metadata"]["candidate_count"] == 3
    assert payload["metadata"]["routed_count"] == 2


def test_route_optimize_rejects_bad_input(api_client: TestClient) -> None:
    bad_waypoint = api_client.post(
        "/api/routes/optimize",
        json={"origin": ORIGIN, "waypoints": [{"id": "a", "coordinates": [3.38, 6.52]}, {"id": "b"}]},
    )
    assert bad_waypoint.status_code == 400
    assert bad_waypoint.json()["detail"] == "Waypoint 1: missing location coordinates"

    bad_origin = api_client.post(
        "/api/routes/optimize",
        json={"origin": [200.0, 6.5], "waypoints": [{"coordinates": [3.38, 6.52]}]},
    )
    assert bad_origin.status_code == 400

    empty = api_client.post("/api/routes/optimize", json={"origin": ORIGIN, "waypoints": []})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "At least one waypoint is required"

    unknown_strategy = api_client.post(
        "/api/routes/optimize",
        json={"origin": ORIGIN, "waypoints": [{"coordinates": [3.38, 6.52]}], "strategy": "fastest"},
    )
    assert unknown_strategy.status_code == 422


def test_pickup_verification_flows_into_token_endpoints(
    api_client: TestClient, ledger: TokenLedger, pickup_factory
) -> None:
    ledger.pickups.save(pickup_factory("pickup-1", status=PickupStatus.PENDING))

    verified = api_client.post(
        "/api/pickups/pickup-1/status", json={"status": "verified", "changed_by": "admin-7"}
    )

    assert verified.status_code == 200
    body = verified.json()
    assert body["old_status"] == "pending"
    assert body["tokens_awarded"] == 19
    assert [m["milestone"] for m in body["milestones_awarded"]] == ["first_pickup"]

    overview = api_client.get("/api/tokens/collector-1").json()
    assert overview["balance"] == 69
    assert overview["verified_pickup_count"] == 1
    assert overview["next_milestone"]["milestone"] == "ten_pickups"
    assert overview["monthly_earned"] == 69
    assert overview["earnings_by_source"]["pickup_verification"] == {"total": 19, "count": 1}
    assert [t["source"] for t in overview["recent_transactions"]] == ["milestone", "pickup_verification"]
    assert overview["recent_transactions"][1]["metadata"]["kind"] == "pickup"

    history = api_client.get("/api/tokens/collector-1/history", params={"source": "milestone"}).json()
    assert len(history["transactions"]) == 1
    assert history["transactions"][0]["type"] == "bonus"
    assert history["pagination"]["total"] == 1
    assert history["summary"]["total_earned"] == 50

    recalculated = api_client.post("/api/tokens/collector-1/recalculate").json()
    assert recalculated == {"collector_id": "collector-1", "balance": 69}


def test_token_history_validates_paging(api_client: TestClient) -> None:
    assert api_client.get("/api/tokens/collector-1/history", params={"limit": 500}).status_code == 422
    assert api_client.get("/api/tokens/collector-1/history", params={"page": 0}).status_code == 422

    empty = api_client.get("/api/tokens/collector-1/history").json()
    assert empty["transactions"] == []
    assert empty["pagination"]["total_pages"] == 0


def test_pickup_status_errors(api_client: TestClient) -> None:
    missing = api_client.post("/api/pickups/missing/status", json={"status": "verified"})
    assert missing.status_code == 404

    invalid = api_client.post("/api/pickups/pickup-1/status", json={"status": "archived"})
    assert invalid.status_code == 422


def test_route_optimize_rejects_non_finite_weight(api_client: TestClient) -> None:
    body = (
        '{"origin": [3.3792, 6.5244], "strategy": "nearest", "waypoints": ['
        '{"id": "a", "coordinates": [3.38, 6.525], "weight": 1.0}, '
        '{"id": "b", "coordinates": [3.39, 6.53], "weight": NaN}]}'
    )

    response = api_client.post(
        "/api/routes/optimize", content=body, headers={"content-type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Waypoint 1: weight must be a finite number"
