"""
modules/planning/ — day distribution (clustering), time-conflict detection
and the itinerary orchestrator.
"""
