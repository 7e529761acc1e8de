"""
db/
----
Persistence for cached route segments.

Storage backends (config.ROUTE_STORE_BACKEND):
  in_memory — process-local dict (default)

  PostgreSQL (psycopg2) — persistent backing store
    table:  route_segments
    schema: db/migrations/001_route_segments.sql
    apply:  python -m itinerary_core.scripts.run_migrations

  Redis (redis-py) — shared hot store
    route:{from_plan_id}:{to_plan_id}      segment JSON
    routeidx:trip:{trip_id} / routeidx:plan:{plan_id}   index sets

Public exports (import from here for convenience):
    from itinerary_core.db import build_route_store, get_redis
"""

from itinerary_core.db.redis_client import get_redis
from itinerary_core.db.route_store import (
    InMemoryRouteSegmentStore,
    PostgresRouteSegmentStore,
    RedisRouteSegmentStore,
    RouteSegmentStore,
    build_route_store,
)

__all__ = [
    "get_redis",
    "RouteSegmentStore",
    "InMemoryRouteSegmentStore",
    "PostgresRouteSegmentStore",
    "RedisRouteSegmentStore",
    "build_route_store",
]
