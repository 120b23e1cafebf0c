"""Route modules."""

from .events import router as events_router
from .jobs import router as jobs_router

__all__ = ["events_router", "jobs_router"]
