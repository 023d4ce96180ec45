"""Version 1 API endpoints."""

from .endpoints import modeler_router, system_router

__all__ = [
    "modeler_router",
    "system_router",
]
