"""
api/routes/itinerary.py
------------------------
POST /v1/itinerary/distribute
POST /v1/itinerary/conflicts

/distribute proposes a day for every plan of a trip by geographic proximity.
The caller owns the plans; this endpoint only returns the proposal (and, when
trip_id is given, drops the trip's cached route segments if any plan changed
day).  Each proposed day lists its time conflicts.

/conflicts reports overlapping plans for the days the plans already have.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from itinerary_core.schemas.itinerary import DayDistribution, Plan
from itinerary_core.modules.planning.day_distributor import to_assignments
from itinerary_core.modules.planning.time_conflict import detect_time_conflicts
from itinerary_core.modules.planning.itinerary_orchestrator import (
    ItineraryOrchestrator,
    get_default_orchestrator,
)
from itinerary_core.modules.validation import validate_plan, validate_total_days

router = APIRouter()


# ── Dependency ─────────────────────────────────────────────────────────────────

def get_orchestrator() -> ItineraryOrchestrator:
    """Process-wide orchestrator; overridden in tests via app.dependency_overrides."""
    return get_default_orchestrator()


# ── Request / Response schemas ─────────────────────────────────────────────────

class PlanIn(BaseModel):
    id:         int
    trip_id:    int
    day:        int = 1
    place_name: str = ""
    start_time: str = Field("09:00", description="HH:MM, zero-padded")
    end_time:   Optional[str] = None
    latitude:   Optional[float] = None
    longitude:  Optional[float] = None

    def to_plan(self) -> Plan:
        return Plan(
            id=self.id,
            trip_id=self.trip_id,
            day=self.day,
            place_name=self.place_name,
            start_time=self.start_time,
            end_time=self.end_time,
            latitude=self.latitude,
            longitude=self.longitude,
        )


class DistributeRequest(BaseModel):
    total_days: int = Field(..., description="Trip length in days, >= 1")
    plans:      list[PlanIn] = Field(default_factory=list)
    trip_id:    Optional[int] = Field(
        None, description="When set, cached route segments are invalidated if any plan moves"
    )


# ── Serialisers ────────────────────────────────────────────────────────────────

def _ser_plan(p: Plan) -> dict:
    return {
        "id":         p.id,
        "trip_id":    p.trip_id,
        "day":        p.day,
        "place_name": p.place_name,
        "start_time": p.start_time,
        "end_time":   p.end_time,
        "latitude":   p.latitude,
        "longitude":  p.longitude,
    }


def _ser_distribution(distribution: list[DayDistribution]) -> dict:
    return {
        "days": [
            {
                "day":       d.day,
                "plans":     [_ser_plan(p) for p in d.plans],
                "conflicts": [c.to_dict() for c in detect_time_conflicts(d.plans)],
            }
            for d in distribution
        ],
        "assignments": [
            {"plan_id": a.plan_id, "day": a.day} for a in to_assignments(distribution)
        ],
    }


def to_plans(items: list[PlanIn]) -> list[Plan]:
    """Convert request plans, raising 422 with every validation error found."""
    plans = [item.to_plan() for item in items]
    errors = [
        f"plan {p.id}: {err}"
        for p in plans
        for err in validate_plan(p.__dict__).errors
    ]
    if errors:
        raise HTTPException(status_code=422, detail=errors)
    return plans


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/distribute", summary="Distribute a trip's plans over its days")
def distribute(
    req: DistributeRequest,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    Clusters plans with coordinates into total_days groups (K-means), numbers
    the days north to south, sorts each day by start time and deals plans
    without coordinates round-robin.
    """
    check = validate_total_days(req.total_days)
    if not check.valid:
        raise HTTPException(status_code=422, detail=check.errors)
    plans = to_plans(req.plans)

    try:
        if req.trip_id is None:
            distribution = orchestrator.distribute_plans_to_days(plans, req.total_days)
        else:
            distribution, _ = orchestrator.apply_distribution(req.trip_id, plans, req.total_days)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return _ser_distribution(distribution)


class ConflictsRequest(BaseModel):
    plans: list[PlanIn] = Field(default_factory=list)


@router.post("/conflicts", summary="Same-day plans whose times overlap")
def conflicts(
    req: ConflictsRequest,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    Groups plans by their current day.  A plan without end_time is taken to
    last 60 minutes; ranges that only touch do not conflict.
    """
    found = orchestrator.find_time_conflicts(to_plans(req.plans))
    return {
        "days": [
            {"day": day, "conflicts": [c.to_dict() for c in day_conflicts]}
            for day, day_conflicts in found.items()
        ],
    }
