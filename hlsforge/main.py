"""
hlsforge API

Main FastAPI application entry point.

Usage:
    uvicorn hlsforge.main:app
"""

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router, streaming_router
from .core.config import get_settings
from .core.redis import check_redis_health
from .tasks.ffmpeg_runner import validate_ffmpeg_available

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(
    title="hlsforge API",
    description="HLS adaptive-bitrate conversion and streaming",
    version=settings.version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")
app.include_router(streaming_router, prefix="/stream", tags=["streaming"])


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {
        "name": "hlsforge API",
        "version": settings.version,
        "status": "running",
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint for Docker/orchestration.

    Redis is required; FFmpeg is reported but only used by the worker.
    """
    checks = {}

    redis_status = check_redis_health()
    if redis_status.healthy:
        checks["redis"] = {"status": "healthy", "latency_ms": redis_status.latency_ms}
    else:
        checks["redis"] = {"status": "unhealthy", "error": redis_status.error}

    checks["ffmpeg"] = {"status": "available" if validate_ffmpeg_available() else "missing"}

    return {
        "status": "healthy" if redis_status.healthy else "unhealthy",
        "checks": checks,
        "version": settings.version,
    }
