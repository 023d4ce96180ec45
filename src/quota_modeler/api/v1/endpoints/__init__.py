"""API endpoint modules for version 1."""

from .modeler import router as modeler_router
from .system import router as system_router

__all__ = [
    "modeler_router",
    "system_router",
]
