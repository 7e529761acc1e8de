"""
scripts/ — operational entry points (schema migrations).
"""
