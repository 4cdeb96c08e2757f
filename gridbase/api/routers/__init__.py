"""
FastAPI routers for organizing API endpoints.

This package contains the table and import routers mounted by gridbase.main.
"""
