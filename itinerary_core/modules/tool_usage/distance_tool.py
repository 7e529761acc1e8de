"""
modules/tool_usage/distance_tool.py
-------------------------------------
Great-circle distance primitive plus straight-line route estimates.
No external HTTP calls are made.

Config knobs (config.py):
  ROAD_DISTANCE_FACTOR -- straight-line → road distance multiplier (default: 1.3)
  FALLBACK_SPEEDS_KMH  -- average speed per travel mode
"""

from __future__ import annotations
import math
from typing import Optional

from itinerary_core import config
from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.schemas.route import RouteResult, TravelMode

# ---------------------------------------------------------------------------
# Pure maths
# ---------------------------------------------------------------------------

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two coordinates (Haversine formula) in metres.

    Symmetric, exactly 0.0 for identical inputs; NaN coordinates give NaN.
    """
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lam = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in km."""
    return haversine_m(Coordinate(lat1, lon1), Coordinate(lat2, lon2)) / 1000.0


def format_duration(duration: str) -> str:
    """'4800s' → '1 h 20 min'.  Strings not in '<n>s' form are returned unchanged."""
    s = duration.strip()
    if not s.endswith("s") or not s[:-1].isdigit():
        return duration
    total = int(s[:-1])
    hours, rem = divmod(total, 3600)
    minutes = rem // 60
    if hours and minutes:
        return f"{hours} h {minutes} min"
    if hours:
        return f"{hours} h"
    if minutes:
        return f"{minutes} min"
    return "< 1 min"


def format_distance(meters: float) -> str:
    """850 → '850 m', 1234 → '1.2 km', 3000 → '3 km'."""
    if meters >= 1000:
        km = meters / 1000
        return f"{km:.0f} km" if km % 1 == 0 else f"{km:.1f} km"
    return f"{int(round(meters))} m"


# ---------------------------------------------------------------------------
# DistanceTool
# ---------------------------------------------------------------------------


class DistanceTool:
    """
    Straight-line route estimates: Haversine distance x road factor, with the
    duration derived from an average speed per travel mode.
    Used when the Routes API is stubbed out or has no coverage for a pair.
    """

    def __init__(
        self,
        road_factor: Optional[float] = None,
        speeds_kmh: Optional[dict[str, float]] = None,
    ) -> None:
        self.road_factor: float = road_factor if road_factor is not None else config.ROAD_DISTANCE_FACTOR
        self.speeds_kmh: dict[str, float] = dict(speeds_kmh or config.FALLBACK_SPEEDS_KMH)

    def distance_m(self, origin: Coordinate, destination: Coordinate) -> float:
        """Return Haversine distance in metres."""
        return haversine_m(origin, destination)

    def estimate(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode = TravelMode.DRIVE,
    ) -> RouteResult:
        """Return a RouteResult built from the straight-line distance alone."""
        distance_meters = int(round(haversine_m(origin, destination) * self.road_factor))
        speed = self.speeds_kmh.get(TravelMode.parse(mode).value) or self.speeds_kmh.get("DRIVE", 40.0)
        seconds = int(round((distance_meters / 1000 / speed) * 3600))
        duration = f"{seconds}s"
        return RouteResult(
            distance_meters=distance_meters,
            duration=duration,
            duration_text=format_duration(duration),
            distance_text=format_distance(distance_meters),
            encoded_polyline="",
            steps=[],
            is_fallback=True,
        )
