"""
modules/tool_usage/ — distance primitive and the routing collaborator.
"""
