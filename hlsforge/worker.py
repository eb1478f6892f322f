"""
hlsforge Worker Entry Point

Starts the RQ worker that runs HLS conversions from hlsforge:conversion.

Usage:
    python -m hlsforge.worker

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
    STORAGE_PATH: Root of videos/ and processed_videos/
"""

import logging
import sys

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker

from .core.config import get_settings
from .core.queue import QUEUE_NAMES
from .core.redis import get_redis_connection
from .tasks.ffmpeg_runner import validate_ffmpeg_available

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("hlsforge.worker")


def create_worker(connection: Redis) -> Worker:
    """Create an RQ worker listening on every hlsforge queue."""
    queues = [Queue(name, connection=connection) for name in QUEUE_NAMES.values()]
    return Worker(queues=queues, connection=connection)


def start_worker() -> None:
    """
    Verify Redis and FFmpeg, then process jobs until terminated.
    """
    logger.info("Starting hlsforge worker...")

    if not validate_ffmpeg_available():
        logger.error("FFmpeg is not available on PATH")
        sys.exit(1)

    try:
        connection = get_redis_connection()
        connection.ping()
        logger.info("Successfully connected to Redis")
    except RedisError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        sys.exit(1)

    logger.info(f"Listening on queues: {', '.join(QUEUE_NAMES.values())}")
    worker = create_worker(connection)

    try:
        worker.work(with_scheduler=False)
    except KeyboardInterrupt:
        logger.info("Worker shutdown requested")

    logger.info("Worker stopped")


def main() -> None:
    """Main entry point for the worker module."""
    start_worker()


if __name__ == "__main__":
    main()
