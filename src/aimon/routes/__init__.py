"""Route modules for the aimon dashboard API."""

from .processes import router as processes_router
from .sessions import router as sessions_router
from .cache import router as cache_router
from .logs import router as logs_router

__all__ = [
    'processes_router',
    'sessions_router',
    'cache_router',
    'logs_router',
]
