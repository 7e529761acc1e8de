"""
schemas/route.py
----------------
Dataclass definitions for routing results and cached route segments.

Units:
  distance_meters → metres (int)
  duration        → Google Routes duration string, "<seconds>s"
  cached_at / updated_at → timezone-aware UTC datetimes
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from itinerary_core.schemas.itinerary import Coordinate


class TravelMode(str, Enum):
    DRIVE = "DRIVE"
    WALK = "WALK"
    TRANSIT = "TRANSIT"
    BICYCLE = "BICYCLE"

    @classmethod
    def parse(cls, value: Any) -> "TravelMode":
        """Coerce a raw mode string; anything unrecognised falls back to DRIVE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.DRIVE


@dataclass
class RouteStep:
    """One turn-by-turn instruction of a route."""
    instruction: str = ""
    distance_text: str = ""
    duration_text: str = ""


@dataclass
class RouteResult:
    """What the routing collaborator returns for one origin/destination pair."""
    distance_meters: int = 0
    duration: str = "0s"
    duration_text: str = ""
    distance_text: str = ""
    encoded_polyline: str = ""
    steps: list[RouteStep] = field(default_factory=list)
    is_fallback: bool = False

    @property
    def duration_seconds(self) -> int:
        return parse_duration_s(self.duration)


@dataclass
class RouteSegment:
    """
    Cached travel data between two consecutive plans.

    Keyed by (from_plan_id, to_plan_id); travel_mode is checked on read.
    from_coords / to_coords are a redundant copy of the plan coordinates
    at fetch time.
    """
    trip_id: int
    from_plan_id: int
    to_plan_id: int
    from_coords: Coordinate
    to_coords: Coordinate
    travel_mode: TravelMode
    distance_meters: int = 0
    duration: str = "0s"
    duration_text: str = ""
    distance_text: str = ""
    encoded_polyline: str = ""
    steps: list[RouteStep] = field(default_factory=list)
    cached_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.from_plan_id, self.to_plan_id)

    @property
    def duration_seconds(self) -> int:
        return parse_duration_s(self.duration)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation (Redis payloads, HTTP responses)."""
        return {
            "id":               self.id,
            "trip_id":          self.trip_id,
            "from_plan_id":     self.from_plan_id,
            "to_plan_id":       self.to_plan_id,
            "from_coords":      {"lat": self.from_coords.lat, "lng": self.from_coords.lng},
            "to_coords":        {"lat": self.to_coords.lat, "lng": self.to_coords.lng},
            "travel_mode":      self.travel_mode.value,
            "distance_meters":  self.distance_meters,
            "duration":         self.duration,
            "duration_text":    self.duration_text,
            "distance_text":    self.distance_text,
            "encoded_polyline": self.encoded_polyline,
            "steps": [
                {
                    "instruction":   s.instruction,
                    "distance_text": s.distance_text,
                    "duration_text": s.duration_text,
                }
                for s in self.steps
            ],
            "cached_at":  self.cached_at.isoformat() if self.cached_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteSegment":
        return cls(
            id=data.get("id"),
            trip_id=int(data["trip_id"]),
            from_plan_id=int(data["from_plan_id"]),
            to_plan_id=int(data["to_plan_id"]),
            from_coords=Coordinate(**data["from_coords"]),
            to_coords=Coordinate(**data["to_coords"]),
            travel_mode=TravelMode.parse(data["travel_mode"]),
            distance_meters=int(data.get("distance_meters") or 0),
            duration=data.get("duration") or "0s",
            duration_text=data.get("duration_text") or "",
            distance_text=data.get("distance_text") or "",
            encoded_polyline=data.get("encoded_polyline") or "",
            steps=[RouteStep(**s) for s in data.get("steps") or []],
            cached_at=_parse_dt(data.get("cached_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )


@dataclass
class TripRouteSummary:
    """Totals over a list of route segments."""
    segment_count: int = 0
    total_distance_meters: int = 0
    total_duration_seconds: int = 0
    total_distance_text: str = ""
    total_duration_text: str = ""


def parse_duration_s(value: str) -> int:
    """
    Parse a Google Routes duration string to integer seconds.
    Format: "123s" or "123.456s"; anything unparsable counts as 0.
    """
    try:
        return int(float(str(value).strip().rstrip("s")))
    except ValueError:
        return 0


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
