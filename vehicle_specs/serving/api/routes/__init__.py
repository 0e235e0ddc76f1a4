"""
API Routes Module
"""
from .health import router as health_router
from .attributes import router as attributes_router
from .editions import router as editions_router
from .collections import router as collections_router

__all__ = [
    "health_router",
    "attributes_router",
    "editions_router",
    "collections_router",
]
