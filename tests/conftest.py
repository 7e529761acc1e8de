import os
import tempfile

# Must be set before itinerary_core.config is imported.
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="itinerary-logs-"))
os.environ["USE_STUB_DIRECTIONS"] = "true"
os.environ["ROUTE_STORE_BACKEND"] = "in_memory"

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from itinerary_core.schemas.itinerary import Plan
from itinerary_core.schemas.route import RouteResult, RouteStep, TravelMode
from itinerary_core.db.route_store import InMemoryRouteSegmentStore
from itinerary_core.modules.routing.route_cache import RouteSegmentCache
from itinerary_core.modules.planning.itinerary_orchestrator import ItineraryOrchestrator
from itinerary_core.modules.tool_usage.directions_tool import (
    RoutingRequestError,
    RoutingUnavailableError,
)


# Helpers
def _make_plan(id, lat=None, lng=0.0, start_time="09:00", trip_id=1, day=1, name=None, end_time=None):
    return Plan(
        id=id,
        trip_id=trip_id,
        day=day,
        place_name=name or f"Place {id}",
        start_time=start_time,
        end_time=end_time,
        latitude=lat,
        longitude=lng if lat is not None else None,
    )


class FakeDirectionsTool:
    """Records calls; fails for selected origins; optional per-origin delay."""

    def __init__(self):
        self.calls = []
        self.fail_origins = set()
        self.delays = {}
        self.unavailable = False
        self._lock = threading.Lock()

    def ensure_available(self):
        if self.unavailable:
            raise RoutingUnavailableError("ERROR_ROUTING_UNAVAILABLE: no key")

    def compute_route(self, origin, destination, mode=TravelMode.DRIVE):
        with self._lock:
            self.calls.append((origin, destination, TravelMode.parse(mode)))
        delay = self.delays.get(origin)
        if delay:
            time.sleep(delay)
        if origin in self.fail_origins:
            raise RoutingRequestError("Routes API request failed (500): boom")
        return RouteResult(
            distance_meters=1000,
            duration="600s",
            duration_text="10 min",
            distance_text="1 km",
            encoded_polyline="_p~iF~ps|U",
            steps=[RouteStep("Head north", "1 km", "10 min")],
        )

    def optimize_order(self, stops, mode=TravelMode.DRIVE):
        # intermediates reversed, ends fixed
        self.ensure_available()
        n = len(stops)
        if n < 3:
            return list(range(n))
        return [0] + list(range(n - 2, 0, -1)) + [n - 1]


class FakeClock:
    def __init__(self, start=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def make_plan():
    return _make_plan


@pytest.fixture
def fake_directions():
    return FakeDirectionsTool()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRouteSegmentStore()


@pytest.fixture
def cache(store, fake_directions, clock):
    return RouteSegmentCache(store, fake_directions, max_concurrency=4, clock=clock)


@pytest.fixture
def orchestrator(cache):
    return ItineraryOrchestrator(cache)
