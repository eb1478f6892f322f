"""
Streaming endpoints for hlsforge.

Serves playlists rewritten for the request and raw media resources:

    /stream/{video_id}/master.m3u8
    /stream/{video_id}/{quality}/playlist.m3u8
    /stream/{video_id}/audio/{filename}
    /stream/{video_id}/subtitles/{filename}
    /stream/{video_id}/{quality}/{segment}

Playlists are sent with Cache-Control: no-cache, media resources are
cached for a year.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse, Response

from ..core.storage import is_quality_name
from ..errors import ManifestMalformed, ManifestNotFound
from ..services.streaming import (
    MANIFEST_CACHE_CONTROL,
    StreamingService,
    cache_control_for,
    content_type_for,
)
from .deps import get_streaming_service

logger = logging.getLogger(__name__)

router = APIRouter()

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"


# =============================================================================
# Helper Functions
# =============================================================================


def stream_base(request: Request, video_id: str, *parts: str) -> str:
    """Root-relative base URL under which the client requests this video's files."""
    root = request.scope.get("root_path", "").rstrip("/")
    return "/".join([f"{root}/stream/{video_id}", *parts])


def playlist_response(text: str) -> Response:
    return Response(
        content=text,
        media_type=PLAYLIST_MEDIA_TYPE,
        headers={"Cache-Control": MANIFEST_CACHE_CONTROL},
    )


def not_found(message: str, resource: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "not_found", "message": message, "resource": resource},
    )


def malformed(error: ManifestMalformed) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "manifest_malformed", "message": str(error)},
    )


def serve_playlist(load) -> Response:
    """Run a playlist loader and map manifest errors to HTTP errors."""
    try:
        return playlist_response(load())
    except ManifestNotFound as e:
        logger.info(str(e))
        raise not_found("Playlist not found", "playlist")
    except ManifestMalformed as e:
        raise malformed(e)


def serve_file(service: StreamingService, video_id: str, relative: str) -> FileResponse:
    path = service.resource_path(video_id, relative)
    if path is None:
        raise not_found("File not found", "file")
    return FileResponse(
        path,
        media_type=content_type_for(path.name),
        headers={"Cache-Control": cache_control_for(path.name)},
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{video_id}/master.m3u8", summary="Master playlist")
def get_master_playlist(
    video_id: str,
    request: Request,
    service: StreamingService = Depends(get_streaming_service),
) -> Response:
    """Master playlist with URIs relative to /stream/{video_id}, duplicates removed."""
    base = stream_base(request, video_id)
    return serve_playlist(lambda: service.master_playlist(video_id, base))


@router.get("/{video_id}/audio/{filename}", summary="Audio playlist or segment")
def get_audio_file(
    video_id: str,
    filename: str,
    request: Request,
    service: StreamingService = Depends(get_streaming_service),
) -> Response:
    if filename.endswith(".m3u8"):
        base = stream_base(request, video_id, "audio")
        return serve_playlist(lambda: service.audio_playlist(video_id, filename, base))
    return serve_file(service, video_id, f"audio/{filename}")


@router.get("/{video_id}/subtitles/{filename}", summary="Subtitle playlist or caption file")
def get_subtitle_file(
    video_id: str,
    filename: str,
    service: StreamingService = Depends(get_streaming_service),
) -> Response:
    """
    Caption files are served as stored. A subtitle playlist missing on disk
    is generated from subtitles/{lang}.vtt or subtitles/sub_{lang}.vtt.
    """
    if filename.endswith(".m3u8"):
        return serve_playlist(lambda: service.subtitle_playlist(video_id, filename))
    return serve_file(service, video_id, f"subtitles/{filename}")


@router.get("/{video_id}/{quality}/{filename}", summary="Rendition playlist or segment")
def get_rendition_file(
    video_id: str,
    quality: str,
    filename: str,
    request: Request,
    service: StreamingService = Depends(get_streaming_service),
) -> Response:
    if not is_quality_name(quality):
        raise not_found("Unknown rendition", "rendition")

    if filename.endswith(".m3u8"):
        base = stream_base(request, video_id, quality)
        return serve_playlist(lambda: service.variant_playlist(video_id, quality, base))
    return serve_file(service, video_id, f"{quality}/{filename}")
