"""
itinerary_core — day distribution of trip plans and cached route segments.
"""

__version__ = "1.0.0"
