"""
Router initialization module.

Exports all API routers for the scanforge backend.
"""
from scanforge.server.routers import realtime, scans, system, targets

__all__ = [
    "realtime",
    "scans",
    "system",
    "targets",
]
