"""
Conversion Task for the hlsforge worker

RQ entry point enqueued by POST /api/videos/{video_id}/process.
Progress is mirrored to the job meta and to the Redis progress hash read
by GET /api/videos/{video_id}/status.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from rq import get_current_job
from rq.job import Job

from ..core.queue import update_progress
from ..core.storage import find_source_video
from ..errors import HlsForgeError
from ..services.converter import HlsConverter
from .ffmpeg_runner import ProgressCallback

logger = logging.getLogger(__name__)


def job_progress_reporter(job: Optional[Job]) -> ProgressCallback:
    """
    Progress callback bound to one RQ job.

    RQ only knows the current job on the worker's main thread, so the job
    is captured up front; encode threads report through this closure.
    """
    lock = threading.Lock()

    def report(percent: int, message: str) -> None:
        if job is None:
            return
        with lock:
            job.meta["progress_percent"] = percent
            job.meta["progress_message"] = message
            job.save_meta()
            update_progress(job.id, percent, message)

    return report


def convert_video(
    video_id: str,
    resolutions: Optional[List[str]] = None,
    base_path: Optional[str] = None,
    include_audio: bool = True,
    include_subtitles: bool = True,
    audio_quality: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Convert a stored source video to HLS.

    Returns:
        Summary dict stored as the RQ job result

    Raises:
        FileNotFoundError: If the source video does not exist
        HlsForgeError: If the conversion fails (the job is marked failed)
    """
    source = find_source_video(video_id)
    if source is None:
        raise FileNotFoundError(f"Source video not found: {video_id}")

    logger.info(f"[{video_id}] Starting HLS conversion of {source.name}")
    report = job_progress_reporter(get_current_job())

    try:
        result = HlsConverter().convert(
            video_id,
            str(source),
            resolutions=resolutions,
            base_path=base_path,
            include_audio=include_audio,
            include_subtitles=include_subtitles,
            audio_quality=audio_quality,
            progress=report,
        )
    except HlsForgeError as e:
        logger.error(f"[{video_id}] Conversion failed: {e}")
        report(100, f"Failed: {e}")
        raise

    logger.info(f"[{video_id}] Conversion finished: {[r.name for r in result.renditions]}")
    return {
        "video_id": video_id,
        "master": str(result.master_path),
        "renditions": [r.name for r in result.renditions],
        "audio_tracks": [t.language for t in result.audio_tracks],
        "subtitle_tracks": [t.language for t in result.subtitle_tracks],
    }
