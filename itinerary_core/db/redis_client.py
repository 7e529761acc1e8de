"""
db/redis_client.py
-------------------
redis-py client — singleton plus helpers for the route segment key schema.

Key schema:

  1. route:{from_plan_id}:{to_plan_id}
       Type : String (RouteSegment.to_dict() as JSON)
       TTL  : none — staleness is decided by cached_at on read,
              deletion is always explicit.

  2. routeidx:trip:{trip_id}     Set of route:* keys belonging to a trip
     routeidx:plan:{plan_id}     Set of route:* keys touching a plan
       Used for bulk invalidation without SCAN.  A deleted key leaves
       every index it was listed in.

  3. route:next_id
       Counter — segment ids.

Environment variables (set in config.py):
    REDIS_HOST        default: localhost
    REDIS_PORT        default: 6379
    REDIS_DB          default: 0
    REDIS_PASSWORD    default: ""  (empty = no auth)
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable

import redis

from itinerary_core import config

# Module-level singleton; initialised lazily on first call to get_redis()
_client: redis.Redis | None = None

_ID_KEY = "route:next_id"


def get_redis() -> redis.Redis:
    """Return the singleton Redis client, creating it on first call."""
    global _client
    if _client is None:
        kwargs: dict[str, Any] = {
            "host":             config.REDIS_HOST,
            "port":             config.REDIS_PORT,
            "db":               config.REDIS_DB,
            "decode_responses": True,   # return str, not bytes
        }
        if config.REDIS_PASSWORD:
            kwargs["password"] = config.REDIS_PASSWORD
        _client = redis.Redis(**kwargs)
    return _client


# ── Keys ───────────────────────────────────────────────────────────────────────

def _route_key(from_plan_id: int, to_plan_id: int) -> str:
    return f"route:{from_plan_id}:{to_plan_id}"


def _trip_idx(trip_id: int) -> str:
    return f"routeidx:trip:{trip_id}"


def _plan_idx(plan_id: int) -> str:
    return f"routeidx:plan:{plan_id}"


def _newer(a: str | None, b: str | None) -> bool:
    """True if ISO timestamp *a* is strictly later than *b*."""
    if not a or not b:
        return False
    return datetime.fromisoformat(a) > datetime.fromisoformat(b)


# ── Route segments ─────────────────────────────────────────────────────────────

def get_route_segment(from_plan_id: int, to_plan_id: int, client: redis.Redis | None = None) -> dict | None:
    """Return the stored segment dict, or None on miss."""
    raw = (client or get_redis()).get(_route_key(from_plan_id, to_plan_id))
    return json.loads(raw) if raw else None


def upsert_route_segment(segment: dict[str, Any], client: redis.Redis | None = None) -> int:
    """
    Write one segment dict (RouteSegment.to_dict() shape) and return its id.

    Runs as a WATCH/MULTI transaction on the segment key so concurrent writers
    for the same plan pair serialise; a write older than the stored
    updated_at is dropped (last-write-wins).
    """
    r = client or get_redis()
    key = _route_key(segment["from_plan_id"], segment["to_plan_id"])

    def _apply(pipe: redis.client.Pipeline) -> int:
        raw = pipe.get(key)
        current = json.loads(raw) if raw else None
        if current and _newer(current.get("updated_at"), segment.get("updated_at")):
            return int(current["id"])

        if current and current.get("id") is not None:
            seg_id = int(current["id"])
        else:
            seg_id = int(pipe.incr(_ID_KEY))
        payload = dict(segment, id=seg_id)

        pipe.multi()
        pipe.set(key, json.dumps(payload, ensure_ascii=False))
        if current and current.get("trip_id") != segment["trip_id"]:
            pipe.srem(_trip_idx(current["trip_id"]), key)
        pipe.sadd(_trip_idx(segment["trip_id"]), key)
        pipe.sadd(_plan_idx(segment["from_plan_id"]), key)
        pipe.sadd(_plan_idx(segment["to_plan_id"]), key)
        return seg_id

    return r.transaction(_apply, key, value_from_callable=True)


def _delete_indexed(
    r: redis.Redis,
    idx_key: str,
    owned: Callable[[dict], bool],
) -> int:
    """
    Delete the segments listed in *idx_key* for which owned(segment) holds.

    Each deleted key is also removed from its trip index and both plan
    indexes.  Members whose segment is gone or not owned are dropped from
    *idx_key* only.
    """
    keys = sorted(r.smembers(idx_key))
    if not keys:
        return 0

    pipe = r.pipeline()
    deleted = 0
    for key, raw in zip(keys, r.mget(keys)):
        segment = json.loads(raw) if raw else None
        if segment is None or not owned(segment):
            pipe.srem(idx_key, key)
            continue
        pipe.delete(key)
        pipe.srem(_trip_idx(segment["trip_id"]), key)
        pipe.srem(_plan_idx(segment["from_plan_id"]), key)
        pipe.srem(_plan_idx(segment["to_plan_id"]), key)
        deleted += 1
    pipe.execute()
    return deleted


def delete_route_segments_for_trip(trip_id: int, client: redis.Redis | None = None) -> int:
    """Delete every segment of a trip.  Returns number of keys deleted."""
    return _delete_indexed(
        client or get_redis(),
        _trip_idx(trip_id),
        lambda s: s.get("trip_id") == trip_id,
    )


def delete_route_segments_for_plan(plan_id: int, client: redis.Redis | None = None) -> int:
    """Delete every segment starting or ending at a plan.  Returns keys deleted."""
    return _delete_indexed(
        client or get_redis(),
        _plan_idx(plan_id),
        lambda s: plan_id in (s.get("from_plan_id"), s.get("to_plan_id")),
    )


def list_route_segments_for_trip(trip_id: int, client: redis.Redis | None = None) -> list[dict]:
    """Return all live segment dicts of a trip, ordered by id."""
    r = client or get_redis()
    keys = sorted(r.smembers(_trip_idx(trip_id)))
    if not keys:
        return []
    segments = [json.loads(raw) for raw in r.mget(keys) if raw]
    return sorted(
        (s for s in segments if s.get("trip_id") == trip_id),
        key=lambda s: s["id"],
    )
