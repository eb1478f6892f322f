"""
Conversion Queue

HLS conversions run in an RQ worker. This module enqueues them under a
deterministic job id per video and tracks their progress in Redis hashes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus

from .redis import get_redis_connection

logger = logging.getLogger(__name__)

QUEUE_NAMES: Dict[str, str] = {
    "conversion": "hlsforge:conversion",
}

# Job timeouts in seconds
JOB_TIMEOUTS: Dict[str, int] = {
    "conversion": 3600,
}

PROGRESS_KEY_PREFIX = "hlsforge:progress"

# Progress hashes expire after one hour
PROGRESS_EXPIRY_SECONDS = 3600

# States in which a conversion job still owns the video's output directory
ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED)


def get_queue(queue_name: str) -> Queue:
    """
    Get an RQ queue by short ("conversion") or full ("hlsforge:conversion") name.

    Raises:
        ValueError: If the queue name is unknown
    """
    if queue_name in QUEUE_NAMES:
        full_name = QUEUE_NAMES[queue_name]
    elif queue_name in QUEUE_NAMES.values():
        full_name = queue_name
    else:
        raise ValueError(f"Unknown queue name: {queue_name}")

    return Queue(full_name, connection=get_redis_connection())


def conversion_job_id(video_id: str) -> str:
    """Deterministic job id, so at most one conversion per video is tracked."""
    return f"convert:{video_id}"


def enqueue_job(
    queue_name: str,
    func: Union[str, Callable],
    *args,
    job_timeout: Optional[int] = None,
    job_id: Optional[str] = None,
    **kwargs,
) -> Job:
    """Enqueue `func` on a named queue with that queue's default timeout."""
    queue = get_queue(queue_name)
    short_name = queue_name.split(":")[-1]
    timeout = job_timeout or JOB_TIMEOUTS.get(short_name, 3600)

    job = queue.enqueue(func, *args, job_timeout=timeout, job_id=job_id, **kwargs)
    logger.info(f"Enqueued job {job.id} on {queue.name} (timeout={timeout}s)")
    return job


def find_active_conversion(video_id: str) -> Optional[Job]:
    """Return the video's conversion job if it is still queued or running."""
    try:
        job = Job.fetch(conversion_job_id(video_id), connection=get_redis_connection())
    except NoSuchJobError:
        return None

    return job if job.get_status() in ACTIVE_STATUSES else None


def enqueue_conversion(
    video_id: str,
    func: Union[str, Callable],
    resolutions: Optional[List[str]] = None,
    base_path: Optional[str] = None,
    include_audio: bool = True,
    include_subtitles: bool = True,
    audio_quality: Optional[str] = None,
) -> Job:
    """
    Enqueue an HLS conversion for a video.

    Any finished or failed job with the same id is replaced.

    Args:
        video_id: Source video id
        func: Worker entry point or its dotted path
        resolutions: Ladder names to encode, None for configured defaults
        base_path: Optional path segment expanded into the master base URI
        include_audio: Extract and declare audio tracks
        include_subtitles: Extract and declare subtitle tracks
        audio_quality: AUDIO_PRESETS name, None for the configured codec and bitrate
    """
    job_id = conversion_job_id(video_id)
    delete_progress(job_id)

    return enqueue_job(
        "conversion",
        func,
        video_id=video_id,
        resolutions=resolutions,
        base_path=base_path,
        include_audio=include_audio,
        include_subtitles=include_subtitles,
        audio_quality=audio_quality,
        job_timeout=JOB_TIMEOUTS["conversion"],
        job_id=job_id,
    )


# ============================================================================
# Progress Tracking
# ============================================================================


def _progress_key(job_id: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}:{job_id}"


def update_progress(job_id: str, percent: int, message: str) -> None:
    """
    Record job progress in a Redis hash with a one-hour expiry.

    Example:
        >>> update_progress("convert:intro", 40, "Encoding 720p")
    """
    redis = get_redis_connection()
    key = _progress_key(job_id)

    pipe = redis.pipeline()
    pipe.hset(
        key,
        mapping={
            "percent": str(max(0, min(100, int(percent)))),
            "message": message,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    pipe.expire(key, PROGRESS_EXPIRY_SECONDS)
    pipe.execute()


def get_progress(job_id: str) -> Optional[Dict[str, Any]]:
    """Progress recorded for a job, or None."""
    data = get_redis_connection().hgetall(_progress_key(job_id))

    if not data:
        return None

    return {
        "percent": int(data.get("percent", 0)),
        "message": data.get("message", ""),
        "updated_at": data.get("updated_at", ""),
    }


def delete_progress(job_id: str) -> bool:
    """Drop a job's progress hash. Returns True if one existed."""
    return get_redis_connection().delete(_progress_key(job_id)) > 0


def get_job_status(job_id: str) -> Optional[Dict[str, Any]]:
    """
    RQ job state merged with recorded progress.

    Returns:
        None if the job is unknown, else a dict with job_id, status,
        progress, result, error, enqueued_at, started_at and ended_at
    """
    redis = get_redis_connection()

    try:
        job = Job.fetch(job_id, connection=redis)
    except NoSuchJobError:
        return None

    status = job.get_status()
    return {
        "job_id": job_id,
        "status": str(getattr(status, "value", status)),
        "progress": get_progress(job_id),
        "result": job.result if job.is_finished else None,
        "error": str(job.exc_info) if job.is_failed and job.exc_info else None,
        "enqueued_at": job.enqueued_at.isoformat() if job.enqueued_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "ended_at": job.ended_at.isoformat() if job.ended_at else None,
    }
