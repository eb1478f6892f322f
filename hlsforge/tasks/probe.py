"""
Source Probing

Reads stream metadata with FFprobe and converts it into domain types:
- SourceMetadata for the first video stream
- MediaTrack per audio stream
- MediaTrack per subtitle stream
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import InvalidSource
from ..schemas.media import MediaTrack, SourceMetadata
from .ffmpeg_runner import FFmpegError, run_ffprobe

logger = logging.getLogger(__name__)

# Used when neither the stream nor the container reports a bitrate
DEFAULT_SOURCE_BITRATE = "5000k"
DEFAULT_AUDIO_BITRATE = "128k"


def _streams_of(data: Dict[str, Any], codec_type: str) -> List[Dict[str, Any]]:
    return [s for s in data.get("streams") or [] if s.get("codec_type") == codec_type]


def _kbps(value: Any) -> Optional[str]:
    """'2500000' -> '2500k'; None when missing or not numeric."""
    try:
        return f"{round(int(value) / 1000)}k"
    except (TypeError, ValueError):
        return None


def _duration(data: Dict[str, Any]) -> Optional[float]:
    try:
        return float((data.get("format") or {}).get("duration"))
    except (TypeError, ValueError):
        return None


def _probe_data(path: str) -> Dict[str, Any]:
    try:
        return run_ffprobe(path)
    except FFmpegError as e:
        raise InvalidSource(f"Could not probe {path}: {e}")


def probe(path: str) -> SourceMetadata:
    """
    Probe a source video.

    Raises:
        InvalidSource: If FFprobe fails, there is no video stream, or the
            stream has no usable dimensions
    """
    data = _probe_data(path)

    video_streams = _streams_of(data, "video")
    if not video_streams:
        raise InvalidSource(f"No video stream found in {path}")

    stream = video_streams[0]
    width = stream.get("width") or 0
    height = stream.get("height") or 0
    if width <= 0 or height <= 0:
        raise InvalidSource(f"Video stream in {path} has no usable dimensions")

    bitrate = (
        _kbps(stream.get("bit_rate"))
        or _kbps((data.get("format") or {}).get("bit_rate"))
        or DEFAULT_SOURCE_BITRATE
    )

    metadata = SourceMetadata(
        width=int(width),
        height=int(height),
        bitrate=bitrate,
        duration_seconds=_duration(data),
        codec=stream.get("codec_name"),
    )
    logger.info(
        f"Probed {path}: {metadata.frame_size} {metadata.bitrate} "
        f"{metadata.codec or 'unknown codec'}"
    )
    return metadata


def list_audio_streams(path: str) -> List[MediaTrack]:
    """Audio tracks of a source, the first one marked default."""
    data = _probe_data(path)
    duration = _duration(data)

    tracks = []
    for index, stream in enumerate(_streams_of(data, "audio")):
        tags = stream.get("tags") or {}
        tracks.append(
            MediaTrack(
                id=f"audio_{index}",
                language=tags.get("language") or "unknown",
                label=tags.get("title") or f"Audio {index + 1}",
                is_default=index == 0,
                duration_seconds=duration,
                codec=stream.get("codec_name") or "unknown",
                bitrate=_kbps(stream.get("bit_rate")) or DEFAULT_AUDIO_BITRATE,
                channels=stream.get("channels") or 2,
            )
        )

    logger.debug(f"Found {len(tracks)} audio stream(s) in {path}")
    return tracks


def detect_subtitle_format(codec_name: Optional[str]) -> str:
    """
    Map an FFprobe subtitle codec to "vtt", "ass" or "srt".

    Example:
        >>> detect_subtitle_format("webvtt")
        'vtt'
        >>> detect_subtitle_format("mov_text")
        'srt'
    """
    codec = (codec_name or "").lower()
    if codec in ("webvtt", "vtt"):
        return "vtt"
    if codec in ("ass", "ssa"):
        return "ass"
    return "srt"


def list_subtitle_streams(path: str) -> List[MediaTrack]:
    """Subtitle tracks of a source."""
    data = _probe_data(path)
    duration = _duration(data)

    tracks = []
    for index, stream in enumerate(_streams_of(data, "subtitle")):
        tags = stream.get("tags") or {}
        tracks.append(
            MediaTrack(
                id=f"sub_{index}",
                language=tags.get("language") or "unknown",
                label=tags.get("title") or f"Subtitle {index + 1}",
                is_default=index == 0,
                duration_seconds=duration,
                codec=stream.get("codec_name"),
                format=detect_subtitle_format(stream.get("codec_name")),
            )
        )

    logger.debug(f"Found {len(tracks)} subtitle stream(s) in {path}")
    return tracks


def media_duration(path: str) -> Optional[float]:
    """Container duration in seconds, None when FFprobe cannot read it."""
    try:
        return _duration(run_ffprobe(path))
    except FFmpegError as e:
        logger.warning(f"Could not read duration of {path}: {e}")
        return None
