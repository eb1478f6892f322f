# FFmpeg execution, probing and encoding.
# The RQ entry point lives in .conversion and is imported by path.
from .encode import (
    EncodeOptions,
    FFmpegEngine,
    bandwidth_for,
    build_encode_command,
    convert_to_vtt,
    extract_subtitles,
    generate_audio_hls,
)
from .ffmpeg_runner import FFmpegError, FFmpegTimeout, run_ffmpeg, validate_ffmpeg_available
from .probe import list_audio_streams, list_subtitle_streams, probe

__all__ = [
    "EncodeOptions",
    "FFmpegEngine",
    "bandwidth_for",
    "build_encode_command",
    "convert_to_vtt",
    "extract_subtitles",
    "generate_audio_hls",
    "FFmpegError",
    "FFmpegTimeout",
    "run_ffmpeg",
    "validate_ffmpeg_available",
    "list_audio_streams",
    "list_subtitle_streams",
    "probe",
]
