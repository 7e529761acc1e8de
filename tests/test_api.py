import pytest
from fastapi.testclient import TestClient

from itinerary_core.api.server import app
from itinerary_core.api.routes.itinerary import get_orchestrator


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _plan(id, lat=None, lng=None, **kw):
    body = {"id": id, "trip_id": 1, "latitude": lat, "longitude": lng}
    body.update(kw)
    return body


PARIS_WALK = [
    _plan(1, 48.8584, 2.2945),
    _plan(2, 48.8606, 2.3376),
    _plan(3, 48.8530, 2.3499),
]


def test_health(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["service"] == "itinerary-core"


def test_distribute(client):
    plans = [
        _plan(1, 10.0, 0.0), _plan(2, 10.01, 0.0), _plan(3, 10.02, 0.0),
        _plan(4, 50.0, 0.0), _plan(5, 50.01, 0.0),
    ]
    resp = client.post("/v1/itinerary/distribute", json={"total_days": 2, "plans": plans})

    assert resp.status_code == 200
    body = resp.json()
    assert [d["day"] for d in body["days"]] == [1, 2]
    assert [p["id"] for p in body["days"][0]["plans"]] == [4, 5]
    assert {a["plan_id"]: a["day"] for a in body["assignments"]} == {4: 1, 5: 1, 1: 2, 2: 2, 3: 2}


def test_distribute_rejects_zero_days(client):
    resp = client.post("/v1/itinerary/distribute", json={"total_days": 0, "plans": []})
    assert resp.status_code == 422


def test_distribute_rejects_half_coordinates(client):
    resp = client.post(
        "/v1/itinerary/distribute",
        json={"total_days": 1, "plans": [_plan(1, 48.0, None)]},
    )
    assert resp.status_code == 422
    assert "plan 1" in resp.json()["detail"][0]


def test_distribute_with_trip_invalidates_cache(client, cache):
    client.post("/v1/routes/directions", json={"trip_id": 1, "plans": PARIS_WALK})
    assert len(cache.segments_for_trip(1)) == 2

    plans = [dict(p, day=1) for p in PARIS_WALK]
    resp = client.post(
        "/v1/itinerary/distribute",
        json={"total_days": 3, "plans": plans, "trip_id": 1},
    )
    assert resp.status_code == 200
    assert cache.segments_for_trip(1) == []


def test_directions(client, fake_directions):
    resp = client.post(
        "/v1/routes/directions",
        json={"trip_id": 1, "travel_mode": "WALK", "plans": PARIS_WALK},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert [(s["from_plan_id"], s["to_plan_id"]) for s in body["segments"]] == [(1, 2), (2, 3)]
    assert all(s["travel_mode"] == "WALK" for s in body["segments"])
    assert body["summary"]["segment_count"] == 2
    assert body["summary"]["total_distance_meters"] == 2000
    assert len(fake_directions.calls) == 2


def test_directions_unknown_mode_is_drive(client):
    resp = client.post(
        "/v1/routes/directions",
        json={"trip_id": 1, "travel_mode": "teleport", "plans": PARIS_WALK},
    )
    assert {s["travel_mode"] for s in resp.json()["segments"]} == {"DRIVE"}


def test_directions_by_day(client):
    plans = [
        dict(PARIS_WALK[0], day=1), dict(PARIS_WALK[1], day=1),
        dict(PARIS_WALK[2], day=2),
    ]
    resp = client.post(
        "/v1/routes/directions",
        json={"trip_id": 1, "plans": plans, "by_day": True},
    )
    body = resp.json()
    assert [d["day"] for d in body["days"]] == [1, 2]
    assert len(body["days"][0]["segments"]) == 1
    assert body["days"][1]["segments"] == []
    assert body["summary"]["segment_count"] == 1


def test_directions_unavailable_is_503(client, fake_directions):
    fake_directions.unavailable = True
    resp = client.post("/v1/routes/directions", json={"trip_id": 1, "plans": PARIS_WALK})
    assert resp.status_code == 503
    assert "ERROR_ROUTING_UNAVAILABLE" in resp.json()["detail"]


def test_segments_and_invalidation(client):
    client.post("/v1/routes/directions", json={"trip_id": 1, "plans": PARIS_WALK})

    listed = client.get("/v1/routes/trips/1/segments").json()
    assert len(listed["segments"]) == 2

    assert client.delete("/v1/routes/plans/3/cache").json() == {"plan_id": 3, "deleted": 1}
    assert client.delete("/v1/routes/trips/1/cache").json() == {"trip_id": 1, "deleted": 1}
    assert client.get("/v1/routes/trips/1/segments").json()["segments"] == []


def test_directions_skips_invalid_plans(client):
    plans = [PARIS_WALK[0], _plan(9, 120.0, 2.3), PARIS_WALK[1]]
    resp = client.post("/v1/routes/directions", json={"trip_id": 1, "plans": plans})
    assert resp.status_code == 200
    assert [(s["from_plan_id"], s["to_plan_id"]) for s in resp.json()["segments"]] == [(1, 2)]


def test_distribute_reports_conflicts_per_day(client):
    plans = [
        _plan(1, 48.85, 2.35, start_time="10:00", end_time="11:00"),
        _plan(2, 48.86, 2.35, start_time="10:30"),
        _plan(3, 48.87, 2.35, start_time="11:00", end_time="12:00"),
    ]
    resp = client.post("/v1/itinerary/distribute", json={"total_days": 1, "plans": plans})

    conflicts = resp.json()["days"][0]["conflicts"]
    assert [(c["plan_a"]["id"], c["plan_b"]["id"]) for c in conflicts] == [(1, 2), (2, 3)]
    assert conflicts[0]["plan_b"]["end_time"] == "11:30"


def test_distribute_day_without_overlap_has_no_conflicts(client):
    plans = [_plan(1, 10.0, 0.0), _plan(2, 50.0, 0.0)]
    resp = client.post("/v1/itinerary/distribute", json={"total_days": 2, "plans": plans})
    assert all(d["conflicts"] == [] for d in resp.json()["days"])


def test_conflicts_endpoint_groups_by_current_day(client):
    plans = [
        _plan(1, day=1, start_time="09:00"),
        _plan(2, day=1, start_time="09:30"),
        _plan(3, day=2, start_time="09:00"),
    ]
    resp = client.post("/v1/itinerary/conflicts", json={"plans": plans})

    assert resp.status_code == 200
    days = resp.json()["days"]
    assert [d["day"] for d in days] == [1]
    assert days[0]["conflicts"][0]["plan_a"]["id"] == 1


def test_optimize(client):
    plans = PARIS_WALK + [_plan(4, 48.8738, 2.2950), _plan(5)]
    resp = client.post("/v1/routes/optimize", json={"travel_mode": "WALK", "plans": plans})

    assert resp.status_code == 200
    # fake tool reverses the intermediates
    assert resp.json() == {"optimized_order": [1, 3, 2, 4, 5]}


def test_optimize_unavailable_is_503(client, fake_directions):
    fake_directions.unavailable = True
    resp = client.post("/v1/routes/optimize", json={"plans": PARIS_WALK})
    assert resp.status_code == 503
