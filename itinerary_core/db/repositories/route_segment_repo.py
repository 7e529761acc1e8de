"""
db/repositories/route_segment_repo.py
---------------------------------------
CRUD operations for the `route_segments` table.

Source: db/migrations/001_route_segments.sql

One row per (from_plan_id, to_plan_id).  Upserts are last-write-wins by
updated_at: an update carrying an older updated_at than the stored row is
ignored.

All functions accept a psycopg2 connection object.
Commit/rollback is managed by the caller (PostgresRouteSegmentStore).
"""

from __future__ import annotations

import json
from typing import Any

from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.schemas.route import RouteSegment, RouteStep, TravelMode

_COLUMNS = """
    segment_id, trip_id, from_plan_id, to_plan_id,
    from_lat, from_lng, to_lat, to_lng, travel_mode,
    distance_meters, duration, duration_text, distance_text,
    encoded_polyline, steps, cached_at, updated_at
"""


def _row_to_segment(row: dict[str, Any]) -> RouteSegment:
    steps = row.get("steps") or []
    if isinstance(steps, str):
        steps = json.loads(steps)
    return RouteSegment(
        id=int(row["segment_id"]),
        trip_id=int(row["trip_id"]),
        from_plan_id=int(row["from_plan_id"]),
        to_plan_id=int(row["to_plan_id"]),
        from_coords=Coordinate(lat=float(row["from_lat"]), lng=float(row["from_lng"])),
        to_coords=Coordinate(lat=float(row["to_lat"]), lng=float(row["to_lng"])),
        travel_mode=TravelMode.parse(row["travel_mode"]),
        distance_meters=int(row["distance_meters"] or 0),
        duration=row["duration"] or "0s",
        duration_text=row["duration_text"] or "",
        distance_text=row["distance_text"] or "",
        encoded_polyline=row["encoded_polyline"] or "",
        steps=[RouteStep(**s) for s in steps],
        cached_at=row["cached_at"],
        updated_at=row["updated_at"],
    )


def get_route_segment(conn, from_plan_id: int, to_plan_id: int) -> RouteSegment | None:
    """Return the stored segment for a plan pair, or None if absent."""
    sql = f"SELECT {_COLUMNS} FROM route_segments WHERE from_plan_id = %s AND to_plan_id = %s"
    with conn.cursor() as cur:
        cur.execute(sql, (from_plan_id, to_plan_id))
        row = cur.fetchone()
        if row is None:
            return None
        cols = [d[0] for d in cur.description]
        return _row_to_segment(dict(zip(cols, row)))


def upsert_route_segment(conn, segment: RouteSegment) -> int:
    """
    Insert or update the row for (from_plan_id, to_plan_id).

    Returns segment_id of the stored row.  When the stored row is newer than
    *segment* the write is skipped and the existing id is returned.
    """
    params = {
        "trip_id":          segment.trip_id,
        "from_plan_id":     segment.from_plan_id,
        "to_plan_id":       segment.to_plan_id,
        "from_lat":         segment.from_coords.lat,
        "from_lng":         segment.from_coords.lng,
        "to_lat":           segment.to_coords.lat,
        "to_lng":           segment.to_coords.lng,
        "travel_mode":      segment.travel_mode.value,
        "distance_meters":  segment.distance_meters,
        "duration":         segment.duration,
        "duration_text":    segment.duration_text,
        "distance_text":    segment.distance_text,
        "encoded_polyline": segment.encoded_polyline,
        "steps":            json.dumps([s.__dict__ for s in segment.steps]),
        "cached_at":        segment.cached_at,
        "updated_at":       segment.updated_at,
    }
    sql = """
        INSERT INTO route_segments (
            trip_id, from_plan_id, to_plan_id,
            from_lat, from_lng, to_lat, to_lng, travel_mode,
            distance_meters, duration, duration_text, distance_text,
            encoded_polyline, steps, cached_at, updated_at
        ) VALUES (
            %(trip_id)s, %(from_plan_id)s, %(to_plan_id)s,
            %(from_lat)s, %(from_lng)s, %(to_lat)s, %(to_lng)s, %(travel_mode)s,
            %(distance_meters)s, %(duration)s, %(duration_text)s, %(distance_text)s,
            %(encoded_polyline)s, %(steps)s::jsonb, %(cached_at)s, %(updated_at)s
        )
        ON CONFLICT (from_plan_id, to_plan_id) DO UPDATE SET
            trip_id          = EXCLUDED.trip_id,
            from_lat         = EXCLUDED.from_lat,
            from_lng         = EXCLUDED.from_lng,
            to_lat           = EXCLUDED.to_lat,
            to_lng           = EXCLUDED.to_lng,
            travel_mode      = EXCLUDED.travel_mode,
            distance_meters  = EXCLUDED.distance_meters,
            duration         = EXCLUDED.duration,
            duration_text    = EXCLUDED.duration_text,
            distance_text    = EXCLUDED.distance_text,
            encoded_polyline = EXCLUDED.encoded_polyline,
            steps            = EXCLUDED.steps,
            cached_at        = EXCLUDED.cached_at,
            updated_at       = EXCLUDED.updated_at
        WHERE route_segments.updated_at <= EXCLUDED.updated_at
        RETURNING segment_id
    """
    with conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
        if row is not None:
            return int(row[0])
        # Conflict row is newer; keep it and report its id.
        cur.execute(
            "SELECT segment_id FROM route_segments WHERE from_plan_id = %s AND to_plan_id = %s",
            (segment.from_plan_id, segment.to_plan_id),
        )
        return int(cur.fetchone()[0])


def delete_route_segments_for_trip(conn, trip_id: int) -> int:
    """Delete every segment of a trip.  Returns number of rows deleted."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM route_segments WHERE trip_id = %s", (trip_id,))
        return cur.rowcount


def delete_route_segments_for_plan(conn, plan_id: int) -> int:
    """Delete every segment starting or ending at a plan.  Returns rows deleted."""
    with conn.cursor() as cur:
        cur.execute(
            "DELETE FROM route_segments WHERE from_plan_id = %s OR to_plan_id = %s",
            (plan_id, plan_id),
        )
        return cur.rowcount


def list_route_segments_for_trip(conn, trip_id: int) -> list[RouteSegment]:
    """Return all segments of a trip ordered by segment_id."""
    sql = f"SELECT {_COLUMNS} FROM route_segments WHERE trip_id = %s ORDER BY segment_id ASC"
    with conn.cursor() as cur:
        cur.execute(sql, (trip_id,))
        cols = [d[0] for d in cur.description]
        return [_row_to_segment(dict(zip(cols, row))) for row in cur.fetchall()]
