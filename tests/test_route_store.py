import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import fakeredis
import pytest

from itinerary_core import config
from itinerary_core.db import redis_client, route_store
from itinerary_core.db.repositories import route_segment_repo
from itinerary_core.db.route_store import (
    InMemoryRouteSegmentStore,
    PostgresRouteSegmentStore,
    RedisRouteSegmentStore,
    build_route_store,
)
from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.schemas.route import RouteSegment, RouteStep, TravelMode

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _segment(trip_id=1, from_id=1, to_id=2, updated_at=T0, distance=1000, **kw):
    return RouteSegment(
        trip_id=trip_id,
        from_plan_id=from_id,
        to_plan_id=to_id,
        from_coords=Coordinate(41.39, 2.17),
        to_coords=Coordinate(41.40, 2.16),
        travel_mode=TravelMode.DRIVE,
        distance_meters=distance,
        duration="300s",
        steps=[RouteStep("Go", "1 km", "5 min")],
        cached_at=updated_at,
        updated_at=updated_at,
        **kw,
    )


# ── In-memory ─────────────────────────────────────────────────────────────────

def test_upsert_assigns_and_keeps_id():
    store = InMemoryRouteSegmentStore()
    first = store.upsert(_segment())
    second = store.upsert(_segment(distance=2000, updated_at=T0 + timedelta(minutes=5)))

    assert first.id == 1
    assert second.id == 1
    assert store.get(1, 2).distance_meters == 2000
    assert len(store) == 1


def test_older_write_does_not_replace_newer():
    store = InMemoryRouteSegmentStore()
    store.upsert(_segment(distance=2000, updated_at=T0 + timedelta(hours=1)))
    kept = store.upsert(_segment(distance=1, updated_at=T0))

    assert kept.distance_meters == 2000
    assert store.get(1, 2).distance_meters == 2000


def test_returned_segments_are_copies():
    store = InMemoryRouteSegmentStore()
    stored = store.upsert(_segment())
    stored.steps.append(RouteStep("Extra"))
    assert len(store.get(1, 2).steps) == 1


def test_delete_and_list():
    store = InMemoryRouteSegmentStore()
    store.upsert(_segment(from_id=1, to_id=2))
    store.upsert(_segment(from_id=2, to_id=3))
    store.upsert(_segment(trip_id=9, from_id=20, to_id=21))

    assert [s.key for s in store.list_for_trip(1)] == [(1, 2), (2, 3)]
    assert store.delete_for_plan(2) == 2
    assert store.list_for_trip(1) == []
    assert store.delete_for_trip(9) == 1
    assert store.delete_for_trip(9) == 0
    assert store.get(20, 21) is None


# ── Factory ───────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("name, cls", [
    ("in_memory", InMemoryRouteSegmentStore),
    ("postgres", PostgresRouteSegmentStore),
    (" Redis ", RedisRouteSegmentStore),
])
def test_build_route_store(name, cls):
    assert isinstance(build_route_store(name), cls)


def test_build_route_store_default_is_config():
    assert isinstance(build_route_store(), InMemoryRouteSegmentStore)


def test_build_route_store_unknown():
    with pytest.raises(ValueError, match="ROUTE_STORE_BACKEND"):
        build_route_store("sqlite")


# ── Postgres repository ───────────────────────────────────────────────────────

def _conn_with_cursor():
    conn = MagicMock()
    cur = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


def test_repo_upsert_returns_id():
    conn, cur = _conn_with_cursor()
    cur.fetchone.return_value = (42,)

    assert route_segment_repo.upsert_route_segment(conn, _segment()) == 42
    sql, params = cur.execute.call_args.args
    assert "ON CONFLICT (from_plan_id, to_plan_id)" in sql
    assert "route_segments.updated_at <= EXCLUDED.updated_at" in sql
    assert params["travel_mode"] == "DRIVE"
    assert json.loads(params["steps"]) == [
        {"instruction": "Go", "distance_text": "1 km", "duration_text": "5 min"}
    ]


def test_repo_upsert_skipped_returns_existing_id():
    conn, cur = _conn_with_cursor()
    cur.fetchone.side_effect = [None, (7,)]
    assert route_segment_repo.upsert_route_segment(conn, _segment()) == 7
    assert cur.execute.call_count == 2


def test_repo_get_maps_row():
    conn, cur = _conn_with_cursor()
    cols = [c.strip() for c in route_segment_repo._COLUMNS.split(",")]
    cur.description = [(c,) for c in cols]
    cur.fetchone.return_value = (
        5, 1, 1, 2,
        41.39, 2.17, 41.40, 2.16, "WALK",
        850, "600s", "10 min", "850 m",
        "xyz", [{"instruction": "Go", "distance_text": "", "duration_text": ""}], T0, T0,
    )

    seg = route_segment_repo.get_route_segment(conn, 1, 2)
    assert seg.id == 5
    assert seg.travel_mode == TravelMode.WALK
    assert seg.to_coords == Coordinate(41.40, 2.16)
    assert seg.steps[0].instruction == "Go"
    assert seg.cached_at == T0


def test_repo_get_miss():
    conn, cur = _conn_with_cursor()
    cur.fetchone.return_value = None
    assert route_segment_repo.get_route_segment(conn, 1, 2) is None


def test_repo_delete_for_plan_matches_both_ends():
    conn, cur = _conn_with_cursor()
    cur.rowcount = 2
    assert route_segment_repo.delete_route_segments_for_plan(conn, 8) == 2
    sql, params = cur.execute.call_args.args
    assert "from_plan_id = %s OR to_plan_id = %s" in sql
    assert params == (8, 8)


def _pool_with_conn():
    pool = MagicMock()
    conn = MagicMock()
    pool.getconn.return_value = conn
    return pool, conn


def test_postgres_store_borrows_and_commits():
    pool, conn = _pool_with_conn()
    with patch.object(route_segment_repo, "delete_route_segments_for_trip", return_value=3) as delete:
        assert PostgresRouteSegmentStore(pool=pool).delete_for_trip(4) == 3

    delete.assert_called_once_with(conn, 4)
    conn.commit.assert_called_once()
    pool.putconn.assert_called_once_with(conn)


def test_postgres_store_rolls_back_on_error():
    pool, conn = _pool_with_conn()
    with patch.object(
        route_segment_repo, "delete_route_segments_for_plan", side_effect=RuntimeError("boom")
    ):
        with pytest.raises(RuntimeError):
            PostgresRouteSegmentStore(pool=pool).delete_for_plan(4)

    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    pool.putconn.assert_called_once_with(conn)


def test_postgres_store_builds_one_tagged_pool(monkeypatch):
    monkeypatch.setattr(config, "POSTGRES_STATEMENT_TIMEOUT_MS", 2500)
    with patch.object(route_store.psycopg2.pool, "ThreadedConnectionPool") as pool_cls:
        store = PostgresRouteSegmentStore()
        store._get_pool()
        store._get_pool()
        store.close()

    pool_cls.assert_called_once()
    kwargs = pool_cls.call_args.kwargs
    assert kwargs["application_name"] == "itinerary_core.route_segments"
    assert kwargs["options"] == "-c statement_timeout=2500"
    pool_cls.return_value.closeall.assert_called_once()


# ── Redis ─────────────────────────────────────────────────────────────────────

def test_redis_get_decodes_json():
    client = MagicMock()
    client.get.return_value = json.dumps(_segment(id=3).to_dict())

    seg = RedisRouteSegmentStore(client=client).get(1, 2)
    client.get.assert_called_once_with("route:1:2")
    assert seg.id == 3
    assert seg.updated_at == T0


def test_redis_get_miss():
    client = MagicMock()
    client.get.return_value = None
    assert RedisRouteSegmentStore(client=client).get(1, 2) is None


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


def test_redis_delete_for_trip_clears_every_index(fake_redis):
    store = RedisRouteSegmentStore(client=fake_redis)
    store.upsert(_segment(from_id=1, to_id=2))
    store.upsert(_segment(from_id=2, to_id=3))

    assert store.delete_for_trip(1) == 2
    assert store.get(1, 2) is None
    assert fake_redis.smembers("routeidx:trip:1") == set()
    assert fake_redis.smembers("routeidx:plan:2") == set()


def test_redis_trip_delete_spares_pair_recached_for_another_trip(fake_redis):
    store = RedisRouteSegmentStore(client=fake_redis)
    store.upsert(_segment(trip_id=5))
    assert store.delete_for_plan(1) == 1
    assert fake_redis.smembers("routeidx:trip:5") == set()

    store.upsert(_segment(trip_id=6, updated_at=T0 + timedelta(minutes=1)))
    assert store.delete_for_trip(5) == 0
    assert store.get(1, 2).trip_id == 6
    assert [s.key for s in store.list_for_trip(6)] == [(1, 2)]


def test_redis_trip_delete_drops_foreign_index_members(fake_redis):
    store = RedisRouteSegmentStore(client=fake_redis)
    store.upsert(_segment(trip_id=6))
    fake_redis.sadd("routeidx:trip:5", "route:1:2", "route:8:9")

    assert store.delete_for_trip(5) == 0
    assert store.get(1, 2) is not None
    assert fake_redis.smembers("routeidx:trip:5") == set()
    assert fake_redis.smembers("routeidx:trip:6") == {"route:1:2"}

def test_redis_upsert_runs_watched_transaction():
    client = MagicMock()
    client.transaction.return_value = 11
    assert redis_client.upsert_route_segment(_segment().to_dict(), client=client) == 11
    args, kwargs = client.transaction.call_args
    assert args[1] == "route:1:2"
    assert kwargs == {"value_from_callable": True}


def test_redis_newer_compares_iso_timestamps():
    later = (T0 + timedelta(seconds=1)).isoformat()
    assert redis_client._newer(later, T0.isoformat())
    assert not redis_client._newer(T0.isoformat(), T0.isoformat())
    assert not redis_client._newer(None, T0.isoformat())
