"""
Video API endpoints for hlsforge.

Lists source videos, reports converted output, queues HLS conversions and
exposes their progress. Converted videos accept external audio and
subtitle files as extra tracks.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from redis.exceptions import RedisError

from ..core.queue import conversion_job_id, enqueue_conversion, find_active_conversion, get_job_status
from ..core.storage import (
    ManifestStore,
    find_source_video,
    list_source_videos,
    validate_video_id,
)
from ..errors import InvalidSource, ManifestMalformed, ManifestNotFound
from ..schemas.video import (
    JobProgress,
    JobStatusResponse,
    ProcessRequest,
    ProcessResponse,
    RecommendedQualitiesResponse,
    TrackAddedResponse,
    VideoInfo,
    VideoListItem,
    VideoListResponse,
    validate_audio_preset,
)
from ..services.planner import recommended_qualities
from ..services.tracks import TrackEditor, TrackEditResult
from ..tasks.ffmpeg_runner import FFmpegError, FFmpegTimeout
from ..tasks.probe import probe
from .deps import get_manifest_store, get_track_editor

logger = logging.getLogger(__name__)

router = APIRouter()

# Dotted path so the API never imports worker-side code
CONVERT_VIDEO_TASK = "hlsforge.tasks.conversion.convert_video"

# Accepted external track files
SUBTITLE_EXTENSIONS = (".vtt", ".srt", ".ass", ".ssa")
AUDIO_EXTENSIONS = (".mp3", ".aac", ".m4a", ".wav", ".flac", ".ogg", ".opus")

# Maximum upload sizes
MAX_SUBTITLE_SIZE = 5 * 1024 * 1024
MAX_AUDIO_SIZE = 100 * 1024 * 1024


# =============================================================================
# Helper Functions
# =============================================================================


def stream_url(video_id: str) -> str:
    return f"/stream/{video_id}/master.m3u8"


def get_source_or_404(video_id: str) -> Path:
    """
    Locate a source video.

    Raises:
        HTTPException 404: If the id is invalid or no source exists
    """
    source = find_source_video(video_id) if validate_video_id(video_id) else None
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": "Video not found",
                "resource": "video",
                "id": video_id,
            },
        )
    return source


def validation_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "validation_error", "message": message},
    )


def get_converted_or_404(video_id: str, store: ManifestStore) -> None:
    """
    Require a published master playlist.

    Raises:
        HTTPException 404: If the video has no published master playlist
    """
    if not store.exists(video_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": "Video has not been converted",
                "resource": "manifest",
                "id": video_id,
            },
        )


def ensure_not_converting(video_id: str) -> None:
    """
    Tracks are only added while no conversion can overwrite the master.

    Raises:
        HTTPException 409: If a conversion is queued or running
        HTTPException 500: If Redis cannot be reached
    """
    try:
        existing = find_active_conversion(video_id)
    except RedisError as e:
        logger.error(f"[{video_id}] Could not check conversion state: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "Failed to check conversion state"},
        )

    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "conflict",
                "message": "Conversion in progress; add tracks once it has finished",
                "existing_job_id": existing.id,
            },
        )


async def save_upload(
    file: UploadFile,
    directory: Path,
    allowed_extensions: Tuple[str, ...],
    max_size: int,
) -> Path:
    """
    Validate an uploaded track file and write it under `directory`.

    Raises:
        HTTPException 400: If the filename, extension or content is invalid
        HTTPException 413: If the file exceeds `max_size`
    """
    if not file.filename:
        raise validation_error("Filename is required")

    suffix = Path(file.filename).suffix.lower()
    if suffix not in allowed_extensions:
        raise validation_error(f"Invalid file type. Allowed formats: {', '.join(allowed_extensions)}")

    content = await file.read()
    if len(content) > max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "error": "file_too_large",
                "message": f"File exceeds maximum size of {max_size // (1024 * 1024)}MB",
                "max_size_bytes": max_size,
            },
        )
    if not content:
        raise validation_error("File is empty")

    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{uuid.uuid4().hex}{suffix}"
    async with aiofiles.open(path, "wb") as f:
        await f.write(content)
    return path


async def run_track_edit(video_id: str, upload: Path, edit, *args, **kwargs) -> TrackEditResult:
    """Run a TrackEditor operation off the event loop and map its errors."""
    try:
        return await run_in_threadpool(edit, video_id, str(upload), *args, **kwargs)
    except ManifestNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "Video has not been converted", "resource": "manifest"},
        )
    except ManifestMalformed as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "manifest_malformed", "message": str(e)},
        )
    except (FFmpegError, FFmpegTimeout) as e:
        logger.warning(f"[{video_id}] Track file rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "invalid_track", "message": "Track file could not be processed"},
        )
    finally:
        upload.unlink(missing_ok=True)


def track_response(video_id: str, kind: str, result: TrackEditResult) -> TrackAddedResponse:
    return TrackAddedResponse(
        video_id=video_id,
        type=kind,
        language=result.track.language,
        uri=result.uri,
        added=result.added,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    response_model=VideoListResponse,
    summary="List source videos",
)
async def list_videos(store: ManifestStore = Depends(get_manifest_store)) -> VideoListResponse:
    """List every source video with its conversion state."""
    items = []
    for path in list_source_videos():
        stat = path.stat()
        processed = store.exists(path.stem)
        items.append(
            VideoListItem(
                id=path.stem,
                filename=path.name,
                size=stat.st_size,
                created=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
                processed=processed,
                stream_url=stream_url(path.stem) if processed else None,
            )
        )
    return VideoListResponse(videos=items, total=len(items))


@router.get(
    "/{video_id}",
    response_model=VideoInfo,
    summary="Get converted output of a video",
    responses={404: {"description": "Video not found"}},
)
async def get_video(video_id: str, store: ManifestStore = Depends(get_manifest_store)) -> VideoInfo:
    """
    Report which renditions and tracks exist for a video.

    A video is known if it has a source or converted output.
    """
    processed = store.exists(video_id)
    if not processed:
        get_source_or_404(video_id)

    return VideoInfo(
        id=video_id,
        processed=processed,
        qualities=store.list_qualities(video_id),
        has_audio=store.has_directory(video_id, "audio"),
        has_subtitles=store.has_directory(video_id, "subtitles"),
        stream_url=stream_url(video_id) if processed else None,
    )


@router.post(
    "/{video_id}/process",
    response_model=ProcessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue HLS conversion",
    responses={
        404: {"description": "Video not found"},
        409: {
            "description": "Conversion already in progress",
            "content": {
                "application/json": {
                    "examples": {
                        "conversion_in_progress": {
                            "summary": "Conversion already in progress",
                            "value": {
                                "error": "conflict",
                                "message": "Conversion already in progress",
                                "existing_job_id": "convert:intro",
                            },
                        },
                    }
                }
            },
        },
    },
)
async def process_video(video_id: str, request: Optional[ProcessRequest] = None) -> ProcessResponse:
    """
    Queue an HLS conversion for a source video.

    Steps:
    1. Verify the source exists
    2. Refuse if a conversion for this video is queued or running
    3. Enqueue the worker task under job id convert:{video_id}
    4. Return 202 with the job id
    """
    get_source_or_404(video_id)
    options = request or ProcessRequest()

    try:
        existing = find_active_conversion(video_id)
    except RedisError as e:
        logger.error(f"[{video_id}] Could not check conversion state: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "Failed to enqueue conversion job"},
        )

    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "conflict",
                "message": "Conversion already in progress",
                "existing_job_id": existing.id,
            },
        )

    try:
        job = enqueue_conversion(
            video_id,
            CONVERT_VIDEO_TASK,
            resolutions=options.resolutions,
            base_path=options.base_path,
            include_audio=options.include_audio,
            include_subtitles=options.include_subtitles,
            audio_quality=options.audio_quality,
        )
    except RedisError as e:
        logger.error(f"[{video_id}] Failed to enqueue conversion: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "Failed to enqueue conversion job"},
        )

    logger.info(f"[{video_id}] Conversion queued as {job.id}")
    return ProcessResponse(
        job_id=job.id,
        video_id=video_id,
        status="queued",
        created_at=datetime.now(timezone.utc),
    )


@router.get(
    "/{video_id}/status",
    response_model=JobStatusResponse,
    summary="Get conversion job status",
    responses={404: {"description": "No conversion job for this video"}},
)
async def get_conversion_status(video_id: str) -> JobStatusResponse:
    """Status and progress of the video's latest conversion job."""
    job_id = conversion_job_id(video_id)
    job_status = get_job_status(job_id) if validate_video_id(video_id) else None

    if job_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": "No conversion job for this video",
                "resource": "job",
                "id": job_id,
            },
        )

    progress = job_status["progress"]
    result = job_status["result"]
    return JobStatusResponse(
        job_id=job_id,
        status=job_status["status"],
        progress=JobProgress(**progress) if progress else None,
        result=result if isinstance(result, dict) else None,
        error=job_status["error"],
        enqueued_at=job_status["enqueued_at"],
        started_at=job_status["started_at"],
        ended_at=job_status["ended_at"],
    )


@router.get(
    "/{video_id}/recommended-qualities",
    response_model=RecommendedQualitiesResponse,
    summary="Suggest a rendition ladder",
    responses={
        404: {"description": "Video not found"},
        422: {"description": "Source could not be probed"},
    },
)
def get_recommended_qualities(video_id: str) -> RecommendedQualitiesResponse:
    """Ladder entries not taller than the source."""
    source_path = get_source_or_404(video_id)

    try:
        source = probe(str(source_path))
    except InvalidSource as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "invalid_source", "message": str(e)},
        )

    return RecommendedQualitiesResponse(
        video_id=video_id,
        source_resolution=source.frame_size,
        recommended=recommended_qualities(source),
    )


@router.post(
    "/{video_id}/subtitles",
    response_model=TrackAddedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a subtitle file",
    responses={
        400: {"description": "Invalid subtitle file"},
        404: {"description": "Video has not been converted"},
        409: {"description": "Conversion in progress"},
        422: {"description": "Subtitle file could not be converted"},
    },
)
async def add_subtitle(
    video_id: str,
    file: UploadFile = File(..., description="Subtitle file (vtt, srt, ass, ssa)"),
    language: str = Form(..., min_length=2, max_length=35, description="Language code, e.g. 'es'"),
    label: Optional[str] = Form(None, max_length=100, description="Display name, defaults to the language"),
    is_default: bool = Form(False, alias="isDefault"),
    store: ManifestStore = Depends(get_manifest_store),
    editor: TrackEditor = Depends(get_track_editor),
) -> TrackAddedResponse:
    """
    Add an external subtitle track to a converted video.

    - Converts SRT/ASS to WebVTT
    - Writes subtitles/{language}.vtt and its playlist
    - Declares the track in the master playlist; re-adding a language
      replaces its captions without duplicating the declaration
    """
    get_converted_or_404(video_id, store)
    ensure_not_converting(video_id)

    upload = await save_upload(
        file, store.output_dir(video_id) / ".uploads", SUBTITLE_EXTENSIONS, MAX_SUBTITLE_SIZE
    )
    result = await run_track_edit(
        video_id, upload, editor.add_subtitle, language, label=label, is_default=is_default
    )
    return track_response(video_id, "subtitles", result)


@router.post(
    "/{video_id}/audio",
    response_model=TrackAddedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an audio file",
    responses={
        400: {"description": "Invalid audio file"},
        404: {"description": "Video has not been converted"},
        409: {"description": "Conversion in progress"},
        422: {"description": "Audio file could not be segmented"},
    },
)
async def add_audio(
    video_id: str,
    file: UploadFile = File(..., description="Audio file (mp3, aac, m4a, wav, flac, ogg, opus)"),
    language: str = Form(..., min_length=2, max_length=35, description="Language code, e.g. 'en'"),
    label: Optional[str] = Form(None, max_length=100, description="Display name, defaults to the language"),
    is_default: bool = Form(False, alias="isDefault"),
    audio_quality: Optional[str] = Form(None, alias="audioQuality"),
    store: ManifestStore = Depends(get_manifest_store),
    editor: TrackEditor = Depends(get_track_editor),
) -> TrackAddedResponse:
    """
    Add an external audio track to a converted video.

    The file is segmented into audio/{language}.m3u8 and declared in the
    master playlist's "audio" group.
    """
    try:
        validate_audio_preset(audio_quality)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "validation_error", "message": str(e)},
        )

    get_converted_or_404(video_id, store)
    ensure_not_converting(video_id)

    upload = await save_upload(
        file, store.output_dir(video_id) / ".uploads", AUDIO_EXTENSIONS, MAX_AUDIO_SIZE
    )
    result = await run_track_edit(
        video_id,
        upload,
        editor.add_audio,
        language,
        label=label,
        is_default=is_default,
        audio_quality=audio_quality,
    )
    return track_response(video_id, "audio", result)
