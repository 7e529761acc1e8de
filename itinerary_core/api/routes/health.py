"""
api/routes/health.py
--------------------
Health-check endpoint, used by load balancers and container health checks.
"""
from __future__ import annotations

from fastapi import APIRouter

from itinerary_core import config

router = APIRouter()


@router.get("/health", summary="Health check")
def health() -> dict:
    """Returns 200 OK when the service is running."""
    return {
        "status": "ok",
        "service": "itinerary-core",
        "route_store": config.ROUTE_STORE_BACKEND,
        "stub_directions": config.USE_STUB_DIRECTIONS,
    }
