"""
modules/planning/day_distributor.py
-------------------------------------
Splits a trip's plans into day buckets by geographic proximity.

Pipeline:
  1. Split plans into with-coordinates / without-coordinates.
  2. No coordinates at all → contiguous even slicing, ceil(n / total_days) per day.
  3. K-means (clustering.cluster) with k = total_days.
  4. Group by cluster index, first-appearance order.
  5. Day number by descending mean latitude (north → south).
  6. Inside a day: sort by start_time ("09:00" when missing).
  7. Plans without coordinates are dealt round-robin over the clustered days,
     appended after the time-sorted plans.
  8. Pad with empty days until exactly total_days entries exist.

Steps 5 and 7 are fixed policies; output must stay stable for identical input.
Pure function: no shared state, input list is never mutated.
"""

from __future__ import annotations
import math
import time as _time_mod
from typing import Sequence

from itinerary_core.schemas.itinerary import DayAssignment, DayDistribution, Plan
from itinerary_core.modules.planning.clustering import cluster
from itinerary_core.modules.observability.logger import StructuredLogger

_perf_logger = StructuredLogger()

DEFAULT_START_TIME: str = "09:00"


def plan_sort_key(plan: Plan) -> str:
    """Zero-padded HH:MM sorts lexicographically; missing time counts as 09:00."""
    return plan.start_time or DEFAULT_START_TIME


def _check_total_days(total_days: int) -> None:
    if isinstance(total_days, bool) or not isinstance(total_days, int) or total_days < 1:
        raise ValueError(f"total_days must be an integer >= 1 (got {total_days!r})")


def _even_slices(plans: Sequence[Plan], total_days: int) -> list[DayDistribution]:
    per_day = math.ceil(len(plans) / total_days)
    return [
        DayDistribution(day=i + 1, plans=list(plans[i * per_day:(i + 1) * per_day]))
        for i in range(total_days)
    ]


def _mean_latitude(plans: Sequence[Plan]) -> float:
    return sum(p.latitude or 0.0 for p in plans) / len(plans)


def distribute_plans_to_days(plans: Sequence[Plan], total_days: int) -> list[DayDistribution]:
    """
    Propose a day for every plan.

    Args:
        plans:      Plans of one trip, in the caller's order.
        total_days: Trip length, integer >= 1.

    Returns:
        Exactly total_days DayDistribution entries, days 1..total_days.
        Every input plan appears exactly once.

    Raises:
        ValueError: total_days is not an integer >= 1.
    """
    _check_total_days(total_days)
    _t0 = _time_mod.perf_counter()

    with_coords = [p for p in plans if p.has_coordinates]
    without_coords = [p for p in plans if not p.has_coordinates]

    if not with_coords:
        result = _even_slices(plans, total_days)
        _perf_logger.performance(
            "distribute_plans_to_days", _t0, _time_mod.perf_counter(),
            plans=len(plans), total_days=total_days, clustered=False,
        )
        return result

    assignments = cluster([(p.id, p.coordinate) for p in with_coords], total_days)

    # dict preserves first-appearance order of cluster indices
    groups: dict[int, list[Plan]] = {}
    for plan, idx in zip(with_coords, assignments):
        groups.setdefault(idx, []).append(plan)

    ordered_groups = sorted(groups.values(), key=_mean_latitude, reverse=True)

    result: list[DayDistribution] = [
        DayDistribution(day=i + 1, plans=sorted(group, key=plan_sort_key))
        for i, group in enumerate(ordered_groups)
    ]

    for i, plan in enumerate(without_coords):
        result[i % len(result)].plans.append(plan)

    while len(result) < total_days:
        result.append(DayDistribution(day=len(result) + 1, plans=[]))

    _perf_logger.performance(
        "distribute_plans_to_days", _t0, _time_mod.perf_counter(),
        plans=len(plans), total_days=total_days, clustered=True, groups=len(groups),
    )
    return result


def to_assignments(distribution: Sequence[DayDistribution]) -> list[DayAssignment]:
    """Flatten a distribution into (plan_id, day) pairs, day order then plan order."""
    return [
        DayAssignment(plan_id=plan.id, day=bucket.day)
        for bucket in distribution
        for plan in bucket.plans
    ]
