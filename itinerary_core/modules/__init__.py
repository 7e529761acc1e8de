"""
modules/ — planning, routing, tool and validation modules.
"""
