"""
api/ — FastAPI application and routers.
"""
