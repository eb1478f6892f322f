"""
FFmpeg Transcoding Engine

Builds and runs the FFmpeg commands of an HLS conversion:
- One segmented rendition per encode job (copy or re-encode)
- One segmented audio playlist per audio stream
- One WebVTT file per subtitle stream

Output layout inside a video's output directory:
    {quality}/playlist.m3u8 + {quality}/segment%03d.ts
    audio/{lang}.m3u8 + audio/{lang}_segment%03d.ts
    subtitles/{lang}.vtt
"""

import logging
import math
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Tuple

from ..core.config import AUDIO_PRESETS, Settings, get_settings
from ..errors import EncodeJobFailed
from ..schemas.media import EncodeJob, MediaTrack
from .ffmpeg_runner import FFmpegError, FFmpegTimeout, ProgressCallback, run_ffmpeg

logger = logging.getLogger(__name__)

# Used when a bitrate string cannot be parsed
DEFAULT_BANDWIDTH_BPS = 500000

_LEADING_INT = re.compile(r"^\s*(\d+)")
_UNSAFE_STEM = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True)
class EncodeOptions:
    """FFmpeg/HLS parameters shared by every job of a conversion."""

    hls_time: int = 10
    hls_playlist_type: str = "vod"
    copy_codecs_threshold_height: int = 720
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    video_codec: str = "h264"
    video_profile: str = "main"
    crf: int = 20
    gop_size: int = 48
    segment_name_template: str = "segment%03d.ts"
    resolution_playlist_name: str = "playlist.m3u8"
    timeout_seconds: int = 1800

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EncodeOptions":
        s = settings or get_settings()
        return cls(
            hls_time=s.hls_time,
            hls_playlist_type=s.hls_playlist_type,
            copy_codecs_threshold_height=s.copy_codecs_threshold_height,
            audio_codec=s.audio_codec,
            audio_bitrate=s.audio_bitrate,
            video_codec=s.video_codec,
            video_profile=s.video_profile,
            crf=s.crf,
            gop_size=s.gop_size,
            segment_name_template=s.segment_name_template,
            resolution_playlist_name=s.resolution_playlist_name,
            timeout_seconds=s.encode_timeout_seconds,
        )

    def with_audio_quality(self, quality: Optional[str]) -> "EncodeOptions":
        """
        Options using the codec and bitrate of an AUDIO_PRESETS entry.

        Raises:
            ValueError: If the preset name is unknown
        """
        if not quality:
            return self
        preset = AUDIO_PRESETS.get(quality)
        if preset is None:
            raise ValueError(f"Unknown audio quality: {quality}. Must be one of: {', '.join(AUDIO_PRESETS)}")
        return replace(self, audio_codec=preset["codec"], audio_bitrate=preset["bitrate"])


def bandwidth_for(bitrate: str) -> int:
    """
    Advertised bandwidth in bits per second for a target bitrate.

    Example:
        >>> bandwidth_for("1500k")
        1500000
        >>> bandwidth_for("fast")
        500000
    """
    match = _LEADING_INT.match(str(bitrate or "").replace("k", ""))
    if not match or int(match.group(1)) == 0:
        return DEFAULT_BANDWIDTH_BPS
    return int(match.group(1)) * 1000


def should_copy_codecs(job: EncodeJob, options: EncodeOptions) -> bool:
    """The native rendition is segmented without re-encoding up to the threshold height."""
    return job.rendition.is_original and job.rendition.height <= options.copy_codecs_threshold_height


def build_encode_command(job: EncodeJob, options: EncodeOptions) -> List[str]:
    """
    FFmpeg command that encodes and segments one rendition.

    The last argument is {output_dir}/{name}/playlist.m3u8.
    """
    rendition = job.rendition
    rendition_dir = os.path.join(job.output_dir, rendition.name)
    playlist_path = os.path.join(rendition_dir, options.resolution_playlist_name)
    segment_path = os.path.join(rendition_dir, options.segment_name_template)

    cmd = ["ffmpeg", "-y", "-i", job.source_path]

    if should_copy_codecs(job, options):
        cmd.extend(["-c:v", "copy", "-c:a", "copy"])
    else:
        bandwidth = bandwidth_for(rendition.target_bitrate)
        cmd.extend([
            "-vf", f"scale={rendition.frame_size.replace('x', ':')}",
            "-c:a", options.audio_codec,
            "-ar", "48000",
            "-b:a", options.audio_bitrate,
            "-c:v", options.video_codec,
            "-profile:v", options.video_profile,
            "-crf", str(options.crf),
            "-sc_threshold", "0",
            "-g", str(options.gop_size),
            "-keyint_min", str(options.gop_size),
            "-b:v", rendition.target_bitrate,
            "-maxrate", f"{math.floor(bandwidth * 1.2 / 1000)}k",
            "-bufsize", f"{math.floor(bandwidth * 1.5 / 1000)}k",
        ])

    cmd.extend([
        "-hls_time", str(options.hls_time),
        "-hls_playlist_type", options.hls_playlist_type,
        "-hls_segment_filename", segment_path,
        playlist_path,
    ])
    return cmd


class FFmpegEngine:
    """
    Transcoding engine backed by the local FFmpeg binary.

    Args:
        options: Encode options, defaults to the configured ones
        duration_seconds: Source duration, enables percentage progress
        progress_callback: Optional function called with (percent, message)
    """

    def __init__(
        self,
        options: Optional[EncodeOptions] = None,
        duration_seconds: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.options = options or EncodeOptions.from_settings()
        self.duration_ms = int((duration_seconds or 0) * 1000)
        self.progress_callback = progress_callback

    def encode(self, job: EncodeJob) -> Tuple[str, int]:
        """
        Encode one rendition.

        Returns:
            (variant playlist path relative to the output dir, bandwidth in bps)

        Raises:
            EncodeJobFailed: If FFmpeg fails or times out
        """
        rendition = job.rendition
        Path(job.output_dir, rendition.name).mkdir(parents=True, exist_ok=True)

        mode = "copying streams" if should_copy_codecs(job, self.options) else "re-encoding"
        logger.info(f"Encoding {rendition.name} ({rendition.frame_size}, {mode})")

        try:
            run_ffmpeg(
                build_encode_command(job, self.options),
                total_duration_ms=self.duration_ms,
                progress_callback=self.progress_callback,
                timeout_seconds=self.options.timeout_seconds,
                label=rendition.name,
            )
        except (FFmpegError, FFmpegTimeout) as e:
            raise EncodeJobFailed(rendition, e)

        relative_path = f"{rendition.name}/{self.options.resolution_playlist_name}"
        return relative_path, bandwidth_for(rendition.target_bitrate)


# =============================================================================
# Audio and Subtitle Tracks
# =============================================================================


def track_stem(language: str) -> str:
    """
    Filesystem-safe file stem for a track language.

    Example:
        >>> track_stem("pt-BR")
        'pt-BR'
        >>> track_stem("en/us")
        'en_us'
    """
    return _UNSAFE_STEM.sub("_", language or "unknown") or "unknown"


def _unique_stem(language: str, used: List[str]) -> str:
    """File stem for a track, suffixed with a counter when the language repeats."""
    stem = track_stem(language)
    candidate, n = stem, 1
    while candidate in used:
        candidate = f"{stem}_{n}"
        n += 1
    used.append(candidate)
    return candidate


def build_audio_command(source_path: str, index: int, audio_dir: str, stem: str, options: EncodeOptions) -> List[str]:
    """FFmpeg command segmenting audio stream `index` into audio/{stem}.m3u8."""
    return [
        "ffmpeg", "-y", "-i", source_path,
        "-map", f"0:a:{index}",
        "-c:a", options.audio_codec,
        "-b:a", options.audio_bitrate,
        "-ar", "48000",
        "-ac", "2",
        "-vn",
        "-hls_time", str(options.hls_time),
        "-hls_playlist_type", "vod",
        "-hls_segment_filename", os.path.join(audio_dir, f"{stem}_segment%03d.ts"),
        os.path.join(audio_dir, f"{stem}.m3u8"),
    ]


def generate_audio_hls(
    source_path: str,
    output_dir: str,
    tracks: List[MediaTrack],
    options: Optional[EncodeOptions] = None,
) -> List[MediaTrack]:
    """
    Segment every audio stream into its own HLS playlist.

    Returns:
        Copies of `tracks` with sub_manifest_uri set to "audio/{stem}.m3u8"

    Raises:
        FFmpegError: If any audio stream fails to segment
    """
    opts = options or EncodeOptions.from_settings()
    audio_dir = os.path.join(output_dir, "audio")
    Path(audio_dir).mkdir(parents=True, exist_ok=True)

    used: List[str] = []
    result = []
    for index, track in enumerate(tracks):
        stem = _unique_stem(track.language, used)
        run_ffmpeg(
            build_audio_command(source_path, index, audio_dir, stem, opts),
            timeout_seconds=opts.timeout_seconds,
            label=f"audio:{stem}",
        )
        result.append(replace(track, sub_manifest_uri=f"audio/{stem}.m3u8"))

    logger.info(f"Generated {len(result)} audio playlist(s)")
    return result


def segment_audio_file(
    audio_path: str,
    output_dir: str,
    stem: str,
    options: Optional[EncodeOptions] = None,
) -> str:
    """
    Segment the first audio stream of an external file into audio/{stem}.m3u8.

    Returns:
        The relative sub-manifest URI

    Raises:
        FFmpegError: If the file cannot be segmented
    """
    opts = options or EncodeOptions.from_settings()
    audio_dir = os.path.join(output_dir, "audio")
    Path(audio_dir).mkdir(parents=True, exist_ok=True)

    run_ffmpeg(
        build_audio_command(audio_path, 0, audio_dir, stem, opts),
        timeout_seconds=opts.timeout_seconds,
        label=f"audio:{stem}",
    )
    return f"audio/{stem}.m3u8"


def extract_subtitles(
    source_path: str,
    output_dir: str,
    tracks: List[MediaTrack],
    options: Optional[EncodeOptions] = None,
) -> List[MediaTrack]:
    """
    Extract every subtitle stream to subtitles/{stem}.vtt.

    Returns:
        Copies of `tracks` with resource set to the WebVTT filename; their
        sub-manifests are generated when the tracks are integrated
    """
    opts = options or EncodeOptions.from_settings()
    subtitles_dir = os.path.join(output_dir, "subtitles")
    Path(subtitles_dir).mkdir(parents=True, exist_ok=True)

    used: List[str] = []
    result = []
    for index, track in enumerate(tracks):
        stem = _unique_stem(track.language, used)
        run_ffmpeg(
            [
                "ffmpeg", "-y", "-i", source_path,
                "-map", f"0:s:{index}",
                "-f", "webvtt",
                os.path.join(subtitles_dir, f"{stem}.vtt"),
            ],
            timeout_seconds=opts.timeout_seconds,
            label=f"subtitles:{stem}",
        )
        result.append(replace(track, resource=f"{stem}.vtt", format="vtt"))

    logger.info(f"Extracted {len(result)} subtitle track(s)")
    return result


def convert_to_vtt(source_file: str, destination: str, timeout_seconds: int = 120) -> str:
    """
    Convert an external SRT/ASS subtitle file to WebVTT.

    Returns:
        The destination path
    """
    Path(destination).parent.mkdir(parents=True, exist_ok=True)
    run_ffmpeg(
        ["ffmpeg", "-y", "-i", source_file, "-f", "webvtt", destination],
        timeout_seconds=timeout_seconds,
        label=f"vtt:{Path(source_file).name}",
    )
    return destination
