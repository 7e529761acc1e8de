"""
modules/planning/clustering.py
--------------------------------
Geographic K-means over (lat, lng) points, Haversine as the distance metric.

Algorithm (deterministic, no randomness):
  - n <= k: every point is its own cluster (indices 0..n-1), no iteration.
  - Seed centroid i with the point at index i * floor(n / k), in input order.
  - Up to _KMEANS_ITERATIONS rounds:
      1. Assign each point to the nearest centroid; the lowest index wins ties.
      2. Stop if the assignment vector equals the previous one
         (the previous vector starts as all zeros).
      3. Move each non-empty cluster's centroid to the arithmetic mean of its
         members' lat and lng.  Empty clusters keep their centroid.

Centroids use plain lat/lng averaging, not a spherical mean.  Downstream day
ordering depends on these exact values.
"""

from __future__ import annotations
from typing import Hashable, Sequence

from itinerary_core.schemas.itinerary import Coordinate
from itinerary_core.modules.tool_usage.distance_tool import haversine_m

_KMEANS_ITERATIONS: int = 20


def _nearest_centroid(point: Coordinate, centroids: Sequence[Coordinate]) -> int:
    best_idx = 0
    best_dist = float("inf")
    for idx, centroid in enumerate(centroids):
        dist = haversine_m(point, centroid)
        if dist < best_dist:
            best_dist = dist
            best_idx = idx
    return best_idx


def _mean_coordinate(members: Sequence[Coordinate]) -> Coordinate:
    return Coordinate(
        lat=sum(m.lat for m in members) / len(members),
        lng=sum(m.lng for m in members) / len(members),
    )


def cluster(
    points: Sequence[tuple[Hashable, Coordinate]],
    k: int,
    max_iterations: int = _KMEANS_ITERATIONS,
) -> list[int]:
    """
    Partition *points* into at most *k* clusters.

    Args:
        points: (id, Coordinate) pairs; ids are carried for the caller only.
        k:      Number of clusters, >= 1.

    Returns:
        One cluster index per input point, in input order.
    """
    if k < 1:
        raise ValueError(f"k must be >= 1 (got {k!r})")

    n = len(points)
    if n <= k:
        return list(range(n))

    coords = [c for _, c in points]
    step = n // k
    centroids: list[Coordinate] = [coords[min(i * step, n - 1)] for i in range(k)]

    assignments: list[int] = [0] * n
    for _ in range(max_iterations):
        new_assignments = [_nearest_centroid(c, centroids) for c in coords]
        if new_assignments == assignments:
            break
        assignments = new_assignments

        members: dict[int, list[Coordinate]] = {}
        for coord, idx in zip(coords, assignments):
            members.setdefault(idx, []).append(coord)
        centroids = [
            _mean_coordinate(members[i]) if i in members else centroids[i]
            for i in range(k)
        ]

    return assignments
