"""
modules/routing/ — route segment cache between consecutive plans.
"""
