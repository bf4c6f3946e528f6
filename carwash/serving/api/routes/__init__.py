"""
API Routes Module
"""
from .health import router as health_router
from .members import router as members_router
from .visits import router as visits_router
from .kiosk import router as kiosk_router
from .analytics import router as analytics_router

__all__ = [
    "health_router",
    "members_router",
    "visits_router",
    "kiosk_router",
    "analytics_router",
]
