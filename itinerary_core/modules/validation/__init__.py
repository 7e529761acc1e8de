"""
modules/validation package — data quality guards before distribution or routing.
"""
from itinerary_core.modules.validation.plan_validator import (
    ValidationResult,
    validate_plan,
    validate_total_days,
    filter_valid,
)

__all__ = [
    "ValidationResult",
    "validate_plan",
    "validate_total_days",
    "filter_valid",
]
