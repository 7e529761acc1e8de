"""
schemas/itinerary.py
--------------------
Dataclass definitions for plans and the day-distribution output.

A Plan is owned by the trip/plan store; the planning core only reads it and
proposes new day numbers via DayDistribution / DayAssignment, and reports
same-day overlaps as TimeConflict.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Coordinate:
    """WGS84 point in decimal degrees."""
    lat: float
    lng: float


@dataclass
class Plan:
    """
    A single scheduled activity within a trip.

    latitude/longitude are either both set or both None.
    start_time is a zero-padded "HH:MM" string; end_time is optional.
    """
    id: int
    trip_id: int
    day: int = 1
    place_name: str = ""
    start_time: str = "09:00"
    end_time: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if not self.has_coordinates:
            return None
        return Coordinate(lat=float(self.latitude), lng=float(self.longitude))


@dataclass
class DayDistribution:
    """One day bucket of a proposed distribution."""
    day: int
    plans: list[Plan] = field(default_factory=list)


@dataclass(frozen=True)
class DayAssignment:
    """Flattened (plan_id, day) pair a caller persists after accepting a distribution."""
    plan_id: int
    day: int


@dataclass(frozen=True)
class TimeSlot:
    """A plan's occupied time range; end_time is filled in when the plan has none."""
    plan_id: int
    place_name: str
    start_time: str
    end_time: str

    def to_dict(self) -> dict:
        return {
            "id":         self.plan_id,
            "place_name": self.place_name,
            "start_time": self.start_time,
            "end_time":   self.end_time,
        }


@dataclass(frozen=True)
class TimeConflict:
    """Two plans of the same day whose time ranges overlap."""
    plan_a: TimeSlot
    plan_b: TimeSlot

    def to_dict(self) -> dict:
        return {"plan_a": self.plan_a.to_dict(), "plan_b": self.plan_b.to_dict()}
