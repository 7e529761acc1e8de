"""
db/route_store.py
------------------
Persistence backends for RouteSegment, one interface, three stores:

  in_memory  — process-local dict, default; used by tests and single-process runs
  postgres   — route_segments table (db/repositories/route_segment_repo.py)
  redis      — route:* keys (db/redis_client.py)

All stores:
  - key segments by (from_plan_id, to_plan_id)
  - assign an integer id on first write and keep it across updates
  - apply last-write-wins by updated_at (older writes never replace newer ones)
  - never delete on read; deletion is explicit (per trip / per plan)

Select with config.ROUTE_STORE_BACKEND or build_route_store("redis").
"""

from __future__ import annotations

import copy
import itertools
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Optional

import psycopg2.pool

from itinerary_core import config
from itinerary_core.db import redis_client
from itinerary_core.db.repositories import route_segment_repo
from itinerary_core.schemas.route import RouteSegment


class RouteSegmentStore(ABC):
    """Keyed get/upsert/delete for RouteSegment."""

    @abstractmethod
    def get(self, from_plan_id: int, to_plan_id: int) -> Optional[RouteSegment]:
        """Return the stored segment for a plan pair, or None."""

    @abstractmethod
    def upsert(self, segment: RouteSegment) -> RouteSegment:
        """Store *segment*; return the segment as stored, id assigned."""

    @abstractmethod
    def delete_for_trip(self, trip_id: int) -> int:
        """Delete all segments of a trip; return the number removed."""

    @abstractmethod
    def delete_for_plan(self, plan_id: int) -> int:
        """Delete all segments touching a plan; return the number removed."""

    @abstractmethod
    def list_for_trip(self, trip_id: int) -> list[RouteSegment]:
        """Return all stored segments of a trip, ordered by id."""


# ── In-memory ──────────────────────────────────────────────────────────────────

class InMemoryRouteSegmentStore(RouteSegmentStore):
    """Dict-backed store guarded by a lock; segments are copied in and out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[int, int], RouteSegment] = {}
        self._ids = itertools.count(1)

    def get(self, from_plan_id: int, to_plan_id: int) -> Optional[RouteSegment]:
        with self._lock:
            row = self._rows.get((from_plan_id, to_plan_id))
            return copy.deepcopy(row) if row else None

    def upsert(self, segment: RouteSegment) -> RouteSegment:
        with self._lock:
            current = self._rows.get(segment.key)
            if current is not None:
                if (
                    current.updated_at is not None
                    and segment.updated_at is not None
                    and current.updated_at > segment.updated_at
                ):
                    return copy.deepcopy(current)
                stored = replace(copy.deepcopy(segment), id=current.id)
            else:
                stored = replace(copy.deepcopy(segment), id=next(self._ids))
            self._rows[segment.key] = stored
            return copy.deepcopy(stored)

    def delete_for_trip(self, trip_id: int) -> int:
        with self._lock:
            doomed = [k for k, s in self._rows.items() if s.trip_id == trip_id]
            for k in doomed:
                del self._rows[k]
            return len(doomed)

    def delete_for_plan(self, plan_id: int) -> int:
        with self._lock:
            doomed = [k for k in self._rows if plan_id in k]
            for k in doomed:
                del self._rows[k]
            return len(doomed)

    def list_for_trip(self, trip_id: int) -> list[RouteSegment]:
        with self._lock:
            rows = [copy.deepcopy(s) for s in self._rows.values() if s.trip_id == trip_id]
        return sorted(rows, key=lambda s: s.id or 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


# ── PostgreSQL ─────────────────────────────────────────────────────────────────

class PostgresRouteSegmentStore(RouteSegmentStore):
    """
    route_segments table; one pooled connection per call.

    The store owns a psycopg2 ThreadedConnectionPool, built from config on
    first use.  Connections are tagged application_name=itinerary_core.route_segments
    and carry POSTGRES_STATEMENT_TIMEOUT_MS as their statement_timeout.
    """

    APPLICATION_NAME = "itinerary_core.route_segments"

    def __init__(self, pool: Optional[psycopg2.pool.AbstractConnectionPool] = None) -> None:
        self._pool = pool
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> psycopg2.pool.AbstractConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=config.POSTGRES_MIN_CONN,
                    maxconn=config.POSTGRES_MAX_CONN,
                    host=config.POSTGRES_HOST,
                    port=config.POSTGRES_PORT,
                    dbname=config.POSTGRES_DB,
                    user=config.POSTGRES_USER,
                    password=config.POSTGRES_PASSWORD,
                    application_name=self.APPLICATION_NAME,
                    options=f"-c statement_timeout={config.POSTGRES_STATEMENT_TIMEOUT_MS}",
                )
            return self._pool

    @contextmanager
    def _connection(self) -> Iterator:
        """Borrow a connection: commit on clean exit, roll back and re-raise on error."""
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    def close(self) -> None:
        """Close every pooled connection (application shutdown)."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
            self._pool = None

    def get(self, from_plan_id: int, to_plan_id: int) -> Optional[RouteSegment]:
        with self._connection() as conn:
            return route_segment_repo.get_route_segment(conn, from_plan_id, to_plan_id)

    def upsert(self, segment: RouteSegment) -> RouteSegment:
        with self._connection() as conn:
            route_segment_repo.upsert_route_segment(conn, segment)
            return route_segment_repo.get_route_segment(conn, segment.from_plan_id, segment.to_plan_id)

    def delete_for_trip(self, trip_id: int) -> int:
        with self._connection() as conn:
            return route_segment_repo.delete_route_segments_for_trip(conn, trip_id)

    def delete_for_plan(self, plan_id: int) -> int:
        with self._connection() as conn:
            return route_segment_repo.delete_route_segments_for_plan(conn, plan_id)

    def list_for_trip(self, trip_id: int) -> list[RouteSegment]:
        with self._connection() as conn:
            return route_segment_repo.list_route_segments_for_trip(conn, trip_id)


# ── Redis ──────────────────────────────────────────────────────────────────────

class RedisRouteSegmentStore(RouteSegmentStore):
    """route:* JSON keys with trip/plan index sets."""

    def __init__(self, client=None) -> None:
        self._client = client

    def get(self, from_plan_id: int, to_plan_id: int) -> Optional[RouteSegment]:
        data = redis_client.get_route_segment(from_plan_id, to_plan_id, client=self._client)
        return RouteSegment.from_dict(data) if data else None

    def upsert(self, segment: RouteSegment) -> RouteSegment:
        redis_client.upsert_route_segment(segment.to_dict(), client=self._client)
        return self.get(segment.from_plan_id, segment.to_plan_id)

    def delete_for_trip(self, trip_id: int) -> int:
        return redis_client.delete_route_segments_for_trip(trip_id, client=self._client)

    def delete_for_plan(self, plan_id: int) -> int:
        return redis_client.delete_route_segments_for_plan(plan_id, client=self._client)

    def list_for_trip(self, trip_id: int) -> list[RouteSegment]:
        return [
            RouteSegment.from_dict(d)
            for d in redis_client.list_route_segments_for_trip(trip_id, client=self._client)
        ]


# ── Factory ────────────────────────────────────────────────────────────────────

_BACKENDS = {
    "in_memory": InMemoryRouteSegmentStore,
    "postgres":  PostgresRouteSegmentStore,
    "redis":     RedisRouteSegmentStore,
}


def build_route_store(backend: Optional[str] = None) -> RouteSegmentStore:
    """Instantiate the store named by *backend* (default: config.ROUTE_STORE_BACKEND)."""
    name = (backend or config.ROUTE_STORE_BACKEND).strip().lower()
    if name not in _BACKENDS:
        raise ValueError(
            f"Unknown ROUTE_STORE_BACKEND {name!r}; expected one of {sorted(_BACKENDS)}"
        )
    return _BACKENDS[name]()
