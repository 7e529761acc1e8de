"""
modules/validation/plan_validator.py
-------------------------------------
Data-quality guards applied to plan records before they reach the day
distributor or the route cache.

  Plan:
    ✓ id and trip_id are integers
    ✓ latitude/longitude are both set or both NULL
    ✓ Coordinates are finite numbers
    ✓ Latitude in [-90, 90]
    ✓ Longitude in [-180, 180]
    ✓ start_time (and end_time if present) is "HH:MM"
    ✓ day >= 1

  Distribution request:
    ✓ total_days is an integer >= 1

Usage:
    from itinerary_core.modules.validation import validate_plan, filter_valid

    result = validate_plan(plan.__dict__)
    if not result.valid:
        logger.warning(result.errors)

    routable = filter_valid(plans, validate_plan)
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ── Result dataclass ───────────────────────────────────────────────────────────

@dataclass
class ValidationResult:
    """
    Outcome of a single validation run.

    Attributes:
        valid:  True iff there are zero errors.
        errors: Human-readable list of failure reasons.
        record: The input record dict (for logging purposes).
    """
    valid: bool
    errors: list[str] = field(default_factory=list)
    record: dict = field(default_factory=dict, repr=False)

    def __bool__(self) -> bool:
        return self.valid


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ── Plan validation ────────────────────────────────────────────────────────────

def validate_plan(record: dict[str, Any]) -> ValidationResult:
    """
    Validate a plan record (Plan.__dict__ or an API payload dict).

    A plan without coordinates is valid: the distributor places it
    round-robin and the route cache skips it.
    """
    errors: list[str] = []

    # ── Identity ───────────────────────────────────────────────────────────
    for key in ("id", "trip_id"):
        if not _is_int(record.get(key)):
            errors.append(f"{key}={record.get(key)!r} must be an integer")

    # ── Coordinates ────────────────────────────────────────────────────────
    lat = record.get("latitude")
    lng = record.get("longitude")

    if (lat is None) != (lng is None):
        errors.append(
            f"latitude/longitude must both be set or both be NULL "
            f"(got lat={lat!r}, lng={lng!r})"
        )
    elif lat is not None:
        try:
            lat = float(lat)
            lng = float(lng)
        except (TypeError, ValueError):
            errors.append(
                f"latitude/longitude must be numeric (got lat={lat!r}, lng={lng!r})"
            )
            return ValidationResult(valid=False, errors=errors, record=record)

        if not (math.isfinite(lat) and math.isfinite(lng)):
            errors.append(f"latitude/longitude must be finite (got lat={lat}, lng={lng})")
        else:
            if not (-90.0 <= lat <= 90.0):
                errors.append(f"latitude={lat} is outside valid range [-90, 90]")
            if not (-180.0 <= lng <= 180.0):
                errors.append(f"longitude={lng} is outside valid range [-180, 180]")

    # ── Times ──────────────────────────────────────────────────────────────
    start = record.get("start_time")
    if start is not None and not _HHMM.match(str(start)):
        errors.append(f"start_time={start!r} must be HH:MM")
    end = record.get("end_time")
    if end is not None and not _HHMM.match(str(end)):
        errors.append(f"end_time={end!r} must be HH:MM")

    # ── Day ────────────────────────────────────────────────────────────────
    day = record.get("day")
    if day is not None and (not _is_int(day) or day < 1):
        errors.append(f"day={day!r} must be a positive integer")

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Distribution request validation ────────────────────────────────────────────

def validate_total_days(value: Any) -> ValidationResult:
    """total_days must be an integer >= 1 (booleans rejected)."""
    errors: list[str] = []
    if not _is_int(value):
        errors.append(f"total_days={value!r} must be an integer")
    elif value < 1:
        errors.append(f"total_days={value} must be >= 1")
    return ValidationResult(valid=len(errors) == 0, errors=errors, record={"total_days": value})


# ── Batch filter helper ────────────────────────────────────────────────────────

def filter_valid(
    items: list[T],
    validator: Callable[[dict], ValidationResult],
    to_dict: Callable[[T], dict] | None = None,
    log: bool = True,
) -> list[T]:
    """
    Apply a validator to every item in a list, return only the valid ones.

    Args:
        items:     List of items (dataclass instances or dicts).
        validator: e.g. validate_plan.
        to_dict:   Optional callable to convert each item to a dict.
                   If None, items are assumed to already be dicts or have __dict__.
        log:       If True, log a warning for every rejected record.

    Returns:
        List containing only items that passed validation, order preserved.
    """
    valid_items: list[T] = []
    rejected = 0

    for item in items:
        record_dict = (
            to_dict(item)
            if to_dict is not None
            else (item if isinstance(item, dict) else item.__dict__)
        )
        result = validator(record_dict)
        if result.valid:
            valid_items.append(item)
        else:
            rejected += 1
            if log:
                logger.warning(
                    "Rejected plan %r: %s", record_dict.get("id", "?"), "; ".join(result.errors)
                )

    if log and rejected:
        logger.warning(
            "%d/%d records rejected; %d passed.", rejected, len(items), len(valid_items)
        )

    return valid_items
