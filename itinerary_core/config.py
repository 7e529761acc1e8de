"""
config.py
---------
Central configuration for the itinerary planning core.
All secrets loaded from environment variables — never hard-coded.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the package directory (if it exists) so env vars in that file
# are picked up by os.getenv() below.  Won't override vars already set in the shell.
_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── Google Routes API (required when USE_STUB_DIRECTIONS=false) ───────────────
# Enable:  Routes API in the Cloud Console.
# The Places key is accepted as a fallback since both APIs share one project key.
GOOGLE_ROUTES_API_KEY: str = os.getenv("GOOGLE_ROUTES_API_KEY", os.getenv("GOOGLE_PLACES_API_KEY", ""))
GOOGLE_ROUTES_URL: str     = os.getenv(
    "GOOGLE_ROUTES_URL", "https://routes.googleapis.com/directions/v2:computeRoutes"
)
ROUTES_LANGUAGE_CODE: str  = os.getenv("ROUTES_LANGUAGE_CODE", "en")
# Timeout in seconds for every Routes API call
ROUTES_REQUEST_TIMEOUT: int = int(os.getenv("ROUTES_REQUEST_TIMEOUT", "30"))

# Stub mode: every route is a straight-line estimate, no HTTP calls are made.
# Set USE_STUB_DIRECTIONS=false and supply GOOGLE_ROUTES_API_KEY for live routing.
USE_STUB_DIRECTIONS: bool = _flag("USE_STUB_DIRECTIONS", "true")

# ── Straight-line fallback (no Routes API coverage / stub mode) ──────────────
# Road distance is roughly 1.3x the great-circle distance.
ROAD_DISTANCE_FACTOR: float = float(os.getenv("ROAD_DISTANCE_FACTOR", "1.3"))
# Average speeds per travel mode (km/h)
FALLBACK_SPEEDS_KMH: dict[str, float] = {
    "DRIVE":   float(os.getenv("FALLBACK_SPEED_DRIVE_KMH",   "40")),
    "WALK":    float(os.getenv("FALLBACK_SPEED_WALK_KMH",    "5")),
    "TRANSIT": float(os.getenv("FALLBACK_SPEED_TRANSIT_KMH", "30")),
    "BICYCLE": float(os.getenv("FALLBACK_SPEED_BICYCLE_KMH", "15")),
}

# ── Route segment cache ──────────────────────────────────────────────────────
# Segments older than this are treated as misses (7 days).
ROUTE_CACHE_MAX_AGE_SECONDS: int = int(os.getenv("ROUTE_CACHE_MAX_AGE_SECONDS", "604800"))
# Upper bound on simultaneous Routes API requests per sequence fetch
ROUTE_FETCH_MAX_CONCURRENCY: int = int(os.getenv("ROUTE_FETCH_MAX_CONCURRENCY", "4"))
# Backing store: "in_memory" | "postgres" | "redis"
ROUTE_STORE_BACKEND: str = os.getenv("ROUTE_STORE_BACKEND", "in_memory")

# ── PostgreSQL ────────────────────────────────────────────────────────────────
# Schema defined in db/migrations/001_route_segments.sql
# Apply with: python -m itinerary_core.scripts.run_migrations
POSTGRES_HOST: str     = os.getenv("POSTGRES_HOST",     "localhost")
POSTGRES_PORT: int     = int(os.getenv("POSTGRES_PORT", "5432"))
POSTGRES_DB: str       = os.getenv("POSTGRES_DB",       "itinerary")
POSTGRES_USER: str     = os.getenv("POSTGRES_USER",     "itinerary_user")
POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "itinerary_pass")
POSTGRES_MIN_CONN: int = int(os.getenv("POSTGRES_MIN_CONN", "1"))
POSTGRES_MAX_CONN: int = int(os.getenv("POSTGRES_MAX_CONN", "10"))
# Per-statement limit for route segment queries (0 = server default)
POSTGRES_STATEMENT_TIMEOUT_MS: int = int(os.getenv("POSTGRES_STATEMENT_TIMEOUT_MS", "5000"))

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_HOST: str        = os.getenv("REDIS_HOST",     "localhost")
REDIS_PORT: int        = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB: int          = int(os.getenv("REDIS_DB",   "0"))
REDIS_PASSWORD: str    = os.getenv("REDIS_PASSWORD", "")

# ── Structured logs ───────────────────────────────────────────────────────────
# JSONL session logs; defaults to logs/ beside the package.
LOGS_DIR: str = os.getenv("LOGS_DIR", str(Path(__file__).resolve().parent.parent / "logs"))
