"""API routes."""

from .admin import router as admin_router
from .bids import router as bids_router
from .jobs import router as jobs_router
from .notifications import router as notifications_router
from .profiles import router as profiles_router
from .requests import router as requests_router
from .timesheets import router as timesheets_router

__all__ = [
    "admin_router",
    "bids_router",
    "jobs_router",
    "notifications_router",
    "profiles_router",
    "requests_router",
    "timesheets_router",
]
