"""
api/routes/routes.py
---------------------
Route segments between consecutive plans.

POST   /v1/routes/directions                 fetch (cache first) for an ordered plan list
POST   /v1/routes/optimize                   shorter visit order, ends fixed
GET    /v1/routes/trips/{trip_id}/segments   everything cached for a trip
DELETE /v1/routes/trips/{trip_id}/cache      invalidate a trip
DELETE /v1/routes/plans/{plan_id}/cache      invalidate segments touching a plan

503 when routing is not configured (no API key and stub mode off); 502 when
the optimisation call itself fails.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from itinerary_core.schemas.route import RouteSegment, TravelMode, TripRouteSummary
from itinerary_core.api.routes.itinerary import PlanIn, get_orchestrator
from itinerary_core.modules.planning.itinerary_orchestrator import ItineraryOrchestrator
from itinerary_core.modules.tool_usage.directions_tool import (
    RoutingRequestError,
    RoutingUnavailableError,
)
from itinerary_core.modules.validation import filter_valid, validate_plan

router = APIRouter()


# ── Request / Response schemas ─────────────────────────────────────────────────

class DirectionsRequest(BaseModel):
    trip_id:     int
    travel_mode: str = Field("DRIVE", description="DRIVE | WALK | TRANSIT | BICYCLE")
    plans:       list[PlanIn] = Field(default_factory=list, description="Visit order")
    refresh:     bool = Field(False, description="Invalidate the trip's cache first")
    by_day:      bool = Field(False, description="Route each day separately, by start time")


class OptimizeRequest(BaseModel):
    travel_mode: str = Field("DRIVE", description="DRIVE | WALK | TRANSIT | BICYCLE")
    plans:       list[PlanIn] = Field(default_factory=list, description="Current visit order")


# ── Serialisers ────────────────────────────────────────────────────────────────

def _ser_summary(s: TripRouteSummary) -> dict:
    return {
        "segment_count":          s.segment_count,
        "total_distance_meters":  s.total_distance_meters,
        "total_duration_seconds": s.total_duration_seconds,
        "total_distance_text":    s.total_distance_text,
        "total_duration_text":    s.total_duration_text,
    }


def _ser_segments(segments: list[RouteSegment]) -> dict:
    return {
        "segments": [s.to_dict() for s in segments],
        "summary":  _ser_summary(ItineraryOrchestrator.summarize_routes(segments)),
    }


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/directions", summary="Route segments for consecutive plans")
def directions(
    req: DirectionsRequest,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    Returns one segment per consecutive pair of routable plans.  Invalid
    plans and failing pairs are omitted; an unknown travel_mode is treated
    as DRIVE.
    """
    plans = filter_valid([item.to_plan() for item in req.plans], validate_plan)
    mode = TravelMode.parse(req.travel_mode)

    try:
        if req.by_day:
            if req.refresh:
                orchestrator.invalidate_route_cache(req.trip_id)
            by_day = orchestrator.fetch_directions_by_day(req.trip_id, plans, mode)
            segments = [s for day in sorted(by_day) for s in by_day[day]]
            body = _ser_segments(segments)
            body["days"] = [
                {"day": day, "segments": [s.to_dict() for s in by_day[day]]}
                for day in sorted(by_day)
            ]
            return body
        segments = orchestrator.fetch_directions_for_trip(
            req.trip_id, plans, mode, refresh=req.refresh
        )
    except RoutingUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return _ser_segments(segments)


@router.get("/trips/{trip_id}/segments", summary="List cached segments of a trip")
def trip_segments(
    trip_id: int,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Stored segments of the trip, stale ones included, ordered by id."""
    return _ser_segments(orchestrator.list_route_segments(trip_id))


@router.delete("/trips/{trip_id}/cache", summary="Invalidate a trip's cached segments")
def invalidate_trip(
    trip_id: int,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"trip_id": trip_id, "deleted": orchestrator.invalidate_route_cache(trip_id)}


@router.delete("/plans/{plan_id}/cache", summary="Invalidate segments touching a plan")
def invalidate_plan(
    plan_id: int,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"plan_id": plan_id, "deleted": orchestrator.remove_plan(plan_id)}


@router.post("/optimize", summary="Shorter visit order for a day's plans")
def optimize(
    req: OptimizeRequest,
    orchestrator: ItineraryOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    First and last plan with coordinates stay put; the others are reordered.
    Plans without coordinates are returned last, in request order.
    """
    plans = filter_valid([item.to_plan() for item in req.plans], validate_plan)
    mode = TravelMode.parse(req.travel_mode)
    try:
        ordered = orchestrator.optimize_visit_order(plans, mode)
    except RoutingUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except RoutingRequestError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"optimized_order": [p.id for p in ordered]}
