"""
modules/tool_usage/directions_tool.py
---------------------------------------
Directions fetcher backed by Google Routes API.

Endpoint:
    POST https://routes.googleapis.com/directions/v2:computeRoutes
    Headers:
        X-Goog-Api-Key: {GOOGLE_ROUTES_API_KEY}
        X-Goog-FieldMask: routes.distanceMeters,routes.duration,
                          routes.polyline.encodedPolyline,
                          routes.legs.steps.navigationInstruction,
                          routes.legs.steps.localizedValues
        Content-Type: application/json
    Body:
        {
          "origin":      {"location": {"latLng": {"latitude": ..., "longitude": ...}}},
          "destination": {"location": {"latLng": {"latitude": ..., "longitude": ...}}},
          "travelMode": "DRIVE" | "WALK" | "TRANSIT" | "BICYCLE",
          "languageCode": "en"
        }

Response fields used:
    routes[0].distanceMeters            → int metres
    routes[0].duration                  → "Ns"
    routes[0].polyline.encodedPolyline  → encoded path
    routes[0].legs[].steps[]            → instruction + localized distance/duration

An empty `routes` list means the API has no coverage for the pair; a
straight-line estimate (DistanceTool) is returned instead.

Waypoint order (optimize_order):
    Same endpoint with "intermediates" and "optimizeWaypointOrder": true;
    FieldMask routes.optimizedIntermediateWaypointIndex.  Origin and
    destination stay fixed.  Stub mode (or no coverage) orders the
    intermediates nearest-neighbour by straight-line distance.

Modes:
    USE_STUB_DIRECTIONS=true  → every route is a straight-line estimate, no HTTP.
    USE_STUB_DIRECTIONS=false → live API; GOOGLE_ROUTES_API_KEY is required.
"""

from __future__ import annotations
import logging
from typing import Any, Optional, Sequence

import requests

from itinerary_core import config
from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.schemas.route import RouteResult, RouteStep, TravelMode
from itinerary_core.modules.tool_usage.distance_tool import (
    DistanceTool,
    format_distance,
    format_duration,
)

logger = logging.getLogger(__name__)

_FIELD_MASK = ",".join([
    "routes.distanceMeters",
    "routes.duration",
    "routes.polyline.encodedPolyline",
    "routes.legs.steps.navigationInstruction",
    "routes.legs.steps.localizedValues",
])

_OPTIMIZE_FIELD_MASK = "routes.optimizedIntermediateWaypointIndex"


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class RoutingUnavailableError(RuntimeError):
    """Routing cannot work at all (e.g. missing API key).  Raised once, upfront."""


class RoutingRequestError(RuntimeError):
    """A single origin/destination request failed (transport or upstream error)."""


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _lat_lng(c: Coordinate) -> dict[str, Any]:
    return {"location": {"latLng": {"latitude": c.lat, "longitude": c.lng}}}


def _parse_steps(route: dict[str, Any]) -> list[RouteStep]:
    steps: list[RouteStep] = []
    for leg in route.get("legs") or []:
        for step in leg.get("steps") or []:
            localized = step.get("localizedValues") or {}
            steps.append(RouteStep(
                instruction=(step.get("navigationInstruction") or {}).get("instructions", ""),
                distance_text=(localized.get("distance") or {}).get("text", ""),
                duration_text=(localized.get("staticDuration") or localized.get("duration") or {}).get("text", ""),
            ))
    return steps


def _parse_route(route: dict[str, Any]) -> RouteResult:
    distance_meters = int(route.get("distanceMeters") or 0)
    duration = route.get("duration") or "0s"
    return RouteResult(
        distance_meters=distance_meters,
        duration=duration,
        duration_text=format_duration(duration),
        distance_text=format_distance(distance_meters),
        encoded_polyline=(route.get("polyline") or {}).get("encodedPolyline", ""),
        steps=_parse_steps(route),
    )


# ─────────────────────────────────────────────────────────────────────────────
# DirectionsTool
# ─────────────────────────────────────────────────────────────────────────────

class DirectionsTool:
    """Computes one route per origin/destination pair (Google Routes or estimate)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        use_stub: Optional[bool] = None,
        distance_tool: Optional[DistanceTool] = None,
        timeout_s: Optional[int] = None,
        language_code: Optional[str] = None,
    ) -> None:
        self.api_key = config.GOOGLE_ROUTES_API_KEY if api_key is None else api_key
        self.use_stub = config.USE_STUB_DIRECTIONS if use_stub is None else use_stub
        self.distance_tool = distance_tool or DistanceTool()
        self.timeout_s = timeout_s or config.ROUTES_REQUEST_TIMEOUT
        self.language_code = language_code or config.ROUTES_LANGUAGE_CODE

    def ensure_available(self) -> None:
        """Raise RoutingUnavailableError if no route can be computed at all."""
        if not self.use_stub and not self.api_key:
            raise RoutingUnavailableError(
                "ERROR_ROUTING_UNAVAILABLE: GOOGLE_ROUTES_API_KEY is not configured "
                "and USE_STUB_DIRECTIONS is false."
            )

    def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TravelMode = TravelMode.DRIVE,
    ) -> RouteResult:
        """
        Return the route between two coordinates.

        Raises:
            RoutingUnavailableError: live mode without an API key.
            RoutingRequestError:     transport failure or non-2xx response.
        """
        mode = TravelMode.parse(mode)
        if self.use_stub:
            return self.distance_tool.estimate(origin, destination, mode)
        self.ensure_available()

        body = {
            "origin": _lat_lng(origin),
            "destination": _lat_lng(destination),
            "travelMode": mode.value,
            "languageCode": self.language_code,
        }
        routes = self._post(body, _FIELD_MASK)
        if not routes:
            logger.info(
                "No Routes API coverage for (%.5f,%.5f) -> (%.5f,%.5f); using straight-line estimate",
                origin.lat, origin.lng, destination.lat, destination.lng,
            )
            return self.distance_tool.estimate(origin, destination, mode)
        return _parse_route(routes[0])

    def optimize_order(
        self,
        stops: Sequence[Coordinate],
        mode: TravelMode = TravelMode.DRIVE,
    ) -> list[int]:
        """
        Best visit order for *stops*, as indices into *stops*.

        The first and last stop stay fixed; only the intermediates are
        reordered.  Fewer than three stops come back unchanged.

        Raises:
            RoutingUnavailableError: live mode without an API key.
            RoutingRequestError:     transport failure, non-2xx response, or an
                                     order that is not a permutation of the
                                     intermediates.
        """
        mode = TravelMode.parse(mode)
        n = len(stops)
        if n < 3:
            return list(range(n))
        if self.use_stub:
            return self._nearest_neighbour_order(stops)
        self.ensure_available()

        body = {
            "origin": _lat_lng(stops[0]),
            "destination": _lat_lng(stops[-1]),
            "intermediates": [_lat_lng(c) for c in stops[1:-1]],
            "travelMode": mode.value,
            "optimizeWaypointOrder": True,
            "languageCode": self.language_code,
        }
        routes = self._post(body, _OPTIMIZE_FIELD_MASK)
        if not routes:
            logger.info("No Routes API coverage for %d stops; using nearest-neighbour order", n)
            return self._nearest_neighbour_order(stops)

        order = routes[0].get("optimizedIntermediateWaypointIndex")
        if order is None:
            order = list(range(n - 2))
        if sorted(order) != list(range(n - 2)):
            raise RoutingRequestError(
                f"Routes API returned an invalid waypoint order for {n - 2} intermediates: {order}"
            )
        return [0] + [i + 1 for i in order] + [n - 1]

    # ── internals ─────────────────────────────────────────────────────────

    def _nearest_neighbour_order(self, stops: Sequence[Coordinate]) -> list[int]:
        """Greedy order: from the origin, always visit the closest remaining intermediate."""
        remaining = list(range(1, len(stops) - 1))
        order = [0]
        while remaining:
            here = stops[order[-1]]
            nearest = min(remaining, key=lambda i: self.distance_tool.distance_m(here, stops[i]))
            remaining.remove(nearest)
            order.append(nearest)
        order.append(len(stops) - 1)
        return order

    def _post(self, body: dict[str, Any], field_mask: str) -> list[dict[str, Any]]:
        """POST *body* to computeRoutes; return the `routes` list (possibly empty)."""
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
        }
        try:
            resp = requests.post(
                config.GOOGLE_ROUTES_URL, json=body, headers=headers, timeout=self.timeout_s
            )
        except requests.RequestException as exc:
            raise RoutingRequestError(f"Routes API transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise RoutingRequestError(
                f"Routes API request failed ({resp.status_code}): {resp.text[:200]}"
            )
        return resp.json().get("routes") or []
