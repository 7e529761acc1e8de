"""
modules/planning/itinerary_orchestrator.py
--------------------------------------------
Caller-facing entry point: wires the day distributor and the route segment
cache together.  Holds no state of its own beyond its collaborators.

Flow for a trip edit:
  1. apply_distribution()  → new day numbers; cached segments of the trip are
                             dropped when any plan moved to another day.
  2. fetch_directions_by_day() / fetch_directions_for_trip()
                           → segments for consecutive plans, cache first.
  3. summarize_routes()    → trip-level distance / duration totals.

optimize_visit_order() proposes a shorter visit order for one day, and
find_time_conflicts() reports same-day plans whose times overlap.

Plan deletion goes through remove_plan() so segments touching the deleted
plan are not served for the new adjacency.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import replace
from typing import Optional, Sequence

from itinerary_core.schemas.itinerary import DayDistribution, Plan, TimeConflict
from itinerary_core.schemas.route import RouteSegment, TravelMode, TripRouteSummary
from itinerary_core.db.route_store import build_route_store
from itinerary_core.modules.planning import day_distributor
from itinerary_core.modules.planning.day_distributor import plan_sort_key
from itinerary_core.modules.planning.time_conflict import detect_time_conflicts
from itinerary_core.modules.routing.route_cache import RouteSegmentCache
from itinerary_core.modules.tool_usage.distance_tool import format_distance, format_duration

logger = logging.getLogger(__name__)


class ItineraryOrchestrator:
    """Thin facade over the day distributor and RouteSegmentCache."""

    def __init__(self, route_cache: RouteSegmentCache) -> None:
        self.route_cache = route_cache

    # ── Day distribution ──────────────────────────────────────────────────────

    def distribute_plans_to_days(self, plans: Sequence[Plan], total_days: int) -> list[DayDistribution]:
        """Propose a day for every plan.  Raises ValueError for total_days < 1."""
        return day_distributor.distribute_plans_to_days(plans, total_days)

    def apply_distribution(
        self,
        trip_id: int,
        plans: Sequence[Plan],
        total_days: int,
    ) -> tuple[list[DayDistribution], list[Plan]]:
        """
        Distribute *plans* and return copies carrying their new day numbers.

        The input plans are not modified.  When at least one plan changes day,
        the trip's cached segments are invalidated.

        Returns:
            (distribution, updated_plans); updated_plans follows the input order.
        """
        distribution = self.distribute_plans_to_days(plans, total_days)
        new_day = {plan.id: bucket.day for bucket in distribution for plan in bucket.plans}

        updated = [replace(p, day=new_day[p.id]) for p in plans]
        moved = sum(1 for old, new in zip(plans, updated) if old.day != new.day)
        if moved:
            logger.info("Trip %s: %d plan(s) moved to another day", trip_id, moved)
            self.route_cache.invalidate_for_trip(trip_id)
        return distribution, updated

    # ── Directions ────────────────────────────────────────────────────────────

    def fetch_directions_for_trip(
        self,
        trip_id: int,
        plans: Sequence[Plan],
        mode: TravelMode = TravelMode.DRIVE,
        refresh: bool = False,
    ) -> list[RouteSegment]:
        """
        Segments for the consecutive pairs of *plans*, in the caller's order.

        refresh=True drops the trip's cached segments first so every pair
        is fetched again.

        Raises:
            RoutingUnavailableError: routing is not configured.
        """
        if refresh:
            self.invalidate_route_cache(trip_id)
        return self.route_cache.fetch_for_sequence(plans, mode, trip_id=trip_id)

    def fetch_directions_by_day(
        self,
        trip_id: int,
        plans: Sequence[Plan],
        mode: TravelMode = TravelMode.DRIVE,
    ) -> dict[int, list[RouteSegment]]:
        """
        Route each day separately: plans are grouped by day, ordered by
        start time, and no segment crosses a day boundary.
        """
        by_day: dict[int, list[Plan]] = {}
        for plan in plans:
            by_day.setdefault(plan.day, []).append(plan)
        return {
            day: self.route_cache.fetch_for_sequence(
                sorted(day_plans, key=plan_sort_key), mode, trip_id=trip_id
            )
            for day, day_plans in sorted(by_day.items())
        }

    def invalidate_route_cache(self, trip_id: int) -> int:
        """Drop every cached segment of a trip."""
        return self.route_cache.invalidate_for_trip(trip_id)

    def remove_plan(self, plan_id: int) -> int:
        """Drop cached segments starting or ending at a deleted plan."""
        return self.route_cache.invalidate_for_plan(plan_id)

    def list_route_segments(self, trip_id: int) -> list[RouteSegment]:
        return self.route_cache.segments_for_trip(trip_id)

    def optimize_visit_order(
        self,
        plans: Sequence[Plan],
        mode: TravelMode = TravelMode.DRIVE,
    ) -> list[Plan]:
        """
        Reorder *plans* to shorten the trip.  The first and last plan with
        coordinates keep their places; plans without coordinates are
        appended afterwards in input order.

        Raises:
            RoutingUnavailableError: routing is not configured.
            RoutingRequestError:     the upstream optimisation call failed.
        """
        routable = [p for p in plans if p.has_coordinates]
        rest = [p for p in plans if not p.has_coordinates]
        order = self.route_cache.directions_tool.optimize_order(
            [p.coordinate for p in routable], mode
        )
        return [routable[i] for i in order] + rest

    # ── Schedule checks ───────────────────────────────────────────────────────

    @staticmethod
    def find_time_conflicts(plans: Sequence[Plan]) -> dict[int, list[TimeConflict]]:
        """Overlapping plans per day; days without a conflict are left out."""
        by_day: dict[int, list[Plan]] = {}
        for plan in plans:
            by_day.setdefault(plan.day, []).append(plan)
        conflicts = {
            day: detect_time_conflicts(sorted(day_plans, key=plan_sort_key))
            for day, day_plans in sorted(by_day.items())
        }
        return {day: found for day, found in conflicts.items() if found}

    # ── Statistics ────────────────────────────────────────────────────────────

    @staticmethod
    def summarize_routes(segments: Sequence[RouteSegment]) -> TripRouteSummary:
        """Total distance and travel time over *segments*."""
        total_m = sum(s.distance_meters for s in segments)
        total_s = sum(s.duration_seconds for s in segments)
        return TripRouteSummary(
            segment_count=len(segments),
            total_distance_meters=total_m,
            total_duration_seconds=total_s,
            total_distance_text=format_distance(total_m),
            total_duration_text=format_duration(f"{total_s}s"),
        )


# ── Process-wide default ───────────────────────────────────────────────────────

_default: Optional[ItineraryOrchestrator] = None
_default_lock = threading.Lock()


def get_default_orchestrator() -> ItineraryOrchestrator:
    """Orchestrator over the configured store and directions tool, built once."""
    global _default
    with _default_lock:
        if _default is None:
            _default = ItineraryOrchestrator(RouteSegmentCache(build_route_store()))
        return _default
