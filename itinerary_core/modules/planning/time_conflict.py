"""
modules/planning/time_conflict.py
-----------------------------------
Detects plans of the same day whose time ranges overlap.

A plan occupies [start_time, end_time).  Without an end_time (or with an
unreadable one) it occupies DEFAULT_DURATION_MINUTES from its start.  Ranges
that only touch (10:00-11:00 and 11:00-12:00) do not conflict.

Callers pass one day's plans; grouping by day is the caller's concern.
"""

from __future__ import annotations
from typing import Optional, Sequence

from itinerary_core.schemas.itinerary import Plan, TimeConflict, TimeSlot
from itinerary_core.modules.planning.day_distributor import plan_sort_key

DEFAULT_DURATION_MINUTES: int = 60


def _to_minutes(value: Optional[str]) -> Optional[int]:
    """Minutes since midnight for "HH:MM"; None when missing or malformed."""
    if not value:
        return None
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        return None
    return int(hours) * 60 + int(minutes)


def _to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _time_range(plan: Plan) -> Optional[tuple[int, int]]:
    start = _to_minutes(plan_sort_key(plan))
    if start is None:
        return None
    end = _to_minutes(plan.end_time)
    if end is None:
        end = start + DEFAULT_DURATION_MINUTES
    return start, end


def _slot(plan: Plan, rng: tuple[int, int]) -> TimeSlot:
    return TimeSlot(
        plan_id=plan.id,
        place_name=plan.place_name,
        start_time=plan_sort_key(plan),
        end_time=_to_hhmm(rng[1]),
    )


def _overlaps(a: tuple[int, int], b: tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def detect_time_conflicts(plans: Sequence[Plan]) -> list[TimeConflict]:
    """
    Return every overlapping pair among *plans*, in input order (i < j).

    Plans whose start_time cannot be read are ignored.
    """
    ranged = []
    for plan in plans:
        rng = _time_range(plan)
        if rng is not None:
            ranged.append((plan, rng))

    conflicts: list[TimeConflict] = []
    for i, (plan_a, range_a) in enumerate(ranged):
        for plan_b, range_b in ranged[i + 1:]:
            if _overlaps(range_a, range_b):
                conflicts.append(TimeConflict(_slot(plan_a, range_a), _slot(plan_b, range_b)))
    return conflicts


def check_plan_conflict(candidate: Plan, existing: Sequence[Plan]) -> Optional[TimeConflict]:
    """
    First plan in *existing* that overlaps *candidate*, as a conflict
    (candidate first), or None.  A plan with the candidate's id is skipped.
    """
    candidate_range = _time_range(candidate)
    if candidate_range is None:
        return None
    for plan in existing:
        if plan.id == candidate.id:
            continue
        other_range = _time_range(plan)
        if other_range is not None and _overlaps(candidate_range, other_range):
            return TimeConflict(_slot(candidate, candidate_range), _slot(plan, other_range))
    return None
