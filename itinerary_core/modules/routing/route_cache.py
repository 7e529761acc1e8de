"""
modules/routing/route_cache.py
--------------------------------
Time-bounded cache of route segments between consecutive plans.

Read rule:
  a stored segment is a hit only if
    - its travel_mode equals the requested mode, and
    - now - cached_at < max_age  (ROUTE_CACHE_MAX_AGE_SECONDS, 7 days)
  Expired entries stay in the store; reads never delete.

Write rule:
  put() stamps updated_at (and cached_at when missing) and upserts by
  (from_plan_id, to_plan_id).  The store applies last-write-wins.

Invalidation is explicit: the orchestrator calls invalidate_for_trip() /
invalidate_for_plan() when adjacency may have changed.

Sequence fetch:
  fetch_for_sequence() resolves every consecutive pair of an ordered plan
  list.  Routing availability is checked once before any pair runs; after
  that a failing pair is logged and omitted, never raised.  Pairs run on a
  bounded thread pool; results keep sequence order.
"""

from __future__ import annotations
import logging
import math
import time as _time_mod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from itinerary_core import config
from itinerary_core.db.route_store import RouteSegmentStore
from itinerary_core.schemas.itinerary import Plan
from itinerary_core.schemas.route import RouteSegment, TravelMode
from itinerary_core.modules.tool_usage.directions_tool import (
    DirectionsTool,
    RoutingUnavailableError,
)
from itinerary_core.modules.observability.logger import StructuredLogger

logger = logging.getLogger(__name__)

_perf_logger = StructuredLogger()

_HIT, _MISS, _FAILED = "hit", "miss", "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _routable(plan: Plan) -> bool:
    if not plan.has_coordinates:
        return False
    try:
        return math.isfinite(float(plan.latitude)) and math.isfinite(float(plan.longitude))
    except (TypeError, ValueError):
        return False


class RouteSegmentCache:
    """
    Cache front for a RouteSegmentStore, fed by a DirectionsTool on misses.

    Args:
        store:           Persistence backend (db.route_store).
        directions_tool: Routing collaborator used on cache misses.
        max_age_seconds: Staleness threshold; default config value (7 days).
        max_concurrency: Max simultaneous routing calls per sequence fetch (>= 1).
        clock:           Returns "now" as an aware datetime; injectable for tests.
    """

    def __init__(
        self,
        store: RouteSegmentStore,
        directions_tool: Optional[DirectionsTool] = None,
        max_age_seconds: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.directions_tool = directions_tool or DirectionsTool()
        self.max_age = timedelta(
            seconds=config.ROUTE_CACHE_MAX_AGE_SECONDS if max_age_seconds is None else max_age_seconds
        )
        if max_concurrency is None:
            max_concurrency = config.ROUTE_FETCH_MAX_CONCURRENCY
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1 (got {max_concurrency!r})")
        self.max_concurrency = max_concurrency
        self._clock = clock

    # ── Single-key operations ─────────────────────────────────────────────────

    def is_fresh(self, segment: RouteSegment, mode: TravelMode) -> bool:
        """True if *segment* matches *mode* and is younger than max_age."""
        if segment.travel_mode != TravelMode.parse(mode) or segment.cached_at is None:
            return False
        return self._clock() - _as_utc(segment.cached_at) < self.max_age

    def get(self, from_plan_id: int, to_plan_id: int, mode: TravelMode) -> Optional[RouteSegment]:
        """Return a fresh cached segment for the pair, or None."""
        segment = self.store.get(from_plan_id, to_plan_id)
        if segment is None or not self.is_fresh(segment, mode):
            return None
        return segment

    def put(self, segment: RouteSegment) -> RouteSegment:
        """Stamp and upsert *segment*; return it as stored (id assigned)."""
        now = self._clock()
        stamped = replace(segment, cached_at=segment.cached_at or now, updated_at=now)
        return self.store.upsert(stamped)

    # ── Invalidation ──────────────────────────────────────────────────────────

    def invalidate_for_trip(self, trip_id: int) -> int:
        """Delete every cached segment of a trip.  Returns number deleted."""
        deleted = self.store.delete_for_trip(trip_id)
        logger.info("Invalidated %d route segment(s) for trip %s", deleted, trip_id)
        _perf_logger.log(f"trip_{trip_id}", "CACHE_INVALIDATION", {"scope": "trip", "deleted": deleted})
        return deleted

    def invalidate_for_plan(self, plan_id: int) -> int:
        """Delete every cached segment starting or ending at a plan."""
        deleted = self.store.delete_for_plan(plan_id)
        logger.info("Invalidated %d route segment(s) touching plan %s", deleted, plan_id)
        _perf_logger.log(None, "CACHE_INVALIDATION", {"scope": "plan", "plan_id": plan_id, "deleted": deleted})
        return deleted

    def segments_for_trip(self, trip_id: int) -> list[RouteSegment]:
        """All stored segments of a trip, fresh or not."""
        return self.store.list_for_trip(trip_id)

    # ── Sequence fetch ────────────────────────────────────────────────────────

    def fetch_for_sequence(
        self,
        ordered_plans: Sequence[Plan],
        mode: TravelMode,
        trip_id: Optional[int] = None,
    ) -> list[RouteSegment]:
        """
        Resolve a segment for each consecutive pair of routable plans.

        Plans without finite coordinates are dropped before pairing.

        Raises:
            RoutingUnavailableError: routing cannot work at all; raised before
                                     any pair is processed.
        """
        mode = TravelMode.parse(mode)
        plans = [p for p in ordered_plans if _routable(p)]
        if len(plans) < 2:
            return []

        self.directions_tool.ensure_available()
        _t0 = _time_mod.perf_counter()

        pairs = list(zip(plans, plans[1:]))
        workers = min(self.max_concurrency, len(pairs))
        if workers == 1:
            outcomes = [self._resolve_pair(a, b, mode, trip_id) for a, b in pairs]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="route-fetch") as pool:
                futures = [pool.submit(self._resolve_pair, a, b, mode, trip_id) for a, b in pairs]
                outcomes = [f.result() for f in futures]

        segments = [seg for seg, _ in outcomes if seg is not None]
        _perf_logger.performance(
            "RouteSegmentCache.fetch_for_sequence", _t0, _time_mod.perf_counter(),
            pairs=len(pairs),
            hits=sum(1 for _, o in outcomes if o == _HIT),
            misses=sum(1 for _, o in outcomes if o == _MISS),
            failed=sum(1 for _, o in outcomes if o == _FAILED),
        )
        return segments

    def _resolve_pair(
        self,
        origin: Plan,
        destination: Plan,
        mode: TravelMode,
        trip_id: Optional[int],
    ) -> tuple[Optional[RouteSegment], str]:
        try:
            cached = self.get(origin.id, destination.id, mode)
            if cached is not None:
                return cached, _HIT

            from_coords, to_coords = origin.coordinate, destination.coordinate
            result = self.directions_tool.compute_route(from_coords, to_coords, mode)
            segment = RouteSegment(
                trip_id=origin.trip_id if trip_id is None else trip_id,
                from_plan_id=origin.id,
                to_plan_id=destination.id,
                from_coords=from_coords,
                to_coords=to_coords,
                travel_mode=mode,
                distance_meters=result.distance_meters,
                duration=result.duration,
                duration_text=result.duration_text,
                distance_text=result.distance_text,
                encoded_polyline=result.encoded_polyline,
                steps=list(result.steps),
            )
            return self.put(segment), _MISS
        except RoutingUnavailableError:
            raise
        except Exception as exc:
            logger.warning(
                "Failed to fetch route from plan %s to plan %s: %s",
                origin.id, destination.id, exc,
            )
            return None, _FAILED
