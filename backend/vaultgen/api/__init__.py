"""API routes."""

from .content import router as content_router
from .generation import router as generation_router

__all__ = [
    "content_router",
    "generation_router",
]
