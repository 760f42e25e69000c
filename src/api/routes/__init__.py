"""
API Routes

Modular route definitions for the CRM Autopilot API.
"""
from src.api.routes.health import router as health_router
from src.api.routes.progression import router as progression_router
from src.api.routes.calendar import router as calendar_router
from src.api.routes.qualification import router as qualification_router

__all__ = [
    "health_router",
    "progression_router",
    "calendar_router",
    "qualification_router",
]
