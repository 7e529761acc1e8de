"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    uvicorn itinerary_core.api.server:app --reload --port 8000

Endpoints:
    GET    /v1/health
    POST   /v1/itinerary/distribute
    POST   /v1/itinerary/conflicts
    POST   /v1/routes/directions
    POST   /v1/routes/optimize
    GET    /v1/routes/trips/{trip_id}/segments
    DELETE /v1/routes/trips/{trip_id}/cache
    DELETE /v1/routes/plans/{plan_id}/cache
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from itinerary_core.api.routes import health, itinerary, routes

app = FastAPI(
    title="Itinerary Planning Core API",
    version="1.0.0",
    description=(
        "Day distribution of trip plans by geographic proximity and cached "
        "route segments between consecutive plans (Google Routes)."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Allow the web frontend (any origin during development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router,     prefix="/v1",           tags=["Health"])
app.include_router(itinerary.router,  prefix="/v1/itinerary", tags=["Itinerary"])
app.include_router(routes.router,     prefix="/v1/routes",    tags=["Routes"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("itinerary_core.api.server:app", host="0.0.0.0", port=8000, reload=True)
