"""PLC inventory REST API package.

Sub-modules expose FastAPI routers for each domain:
- search: equipment search, suggestions, view refresh, metrics and health
"""
