"""
hlsforge API routes package.
"""

from fastapi import APIRouter

from .streaming import router as streaming_router
from .videos import router as videos_router

# JSON API, mounted under /api
api_router = APIRouter()
api_router.include_router(videos_router, prefix="/videos", tags=["videos"])

__all__ = [
    "api_router",
    "streaming_router",
    "videos_router",
]
