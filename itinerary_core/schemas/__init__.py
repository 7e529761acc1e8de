"""
schemas/ — dataclasses shared by the planning engine, the route cache and the API.
"""
from itinerary_core.schemas.itinerary import (
    Coordinate,
    DayAssignment,
    DayDistribution,
    Plan,
    TimeConflict,
    TimeSlot,
)
from itinerary_core.schemas.route import (
    RouteResult,
    RouteSegment,
    RouteStep,
    TravelMode,
    TripRouteSummary,
)

__all__ = [
    "Coordinate",
    "DayAssignment",
    "DayDistribution",
    "Plan",
    "TimeConflict",
    "TimeSlot",
    "RouteResult",
    "RouteSegment",
    "RouteStep",
    "TravelMode",
    "TripRouteSummary",
]
