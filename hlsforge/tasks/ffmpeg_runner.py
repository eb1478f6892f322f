"""
FFmpeg Runner

Runs one FFmpeg/FFprobe invocation with:
- Progress reporting via -progress pipe:1
- Timeout enforcement by a watchdog timer (SIGKILL to the whole process group)
- Stderr captured to a temporary file, its tail kept in the raised error

Every encode job of a batch runs through here in its own worker thread.
"""

import json
import logging
import os
import re
import signal
import subprocess
import tempfile
import threading
import time
from typing import IO, Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Bytes of stderr kept in error messages
STDERR_TAIL_CHARS = 2000

ProgressCallback = Callable[[int, str], None]

_TIME_US = re.compile(r"out_time_us=(\d+)")
_TIME_MS = re.compile(r"out_time_ms=(\d+)")
_TIME_STR = re.compile(r"out_time=(\d+):(\d+):(\d+)\.(\d+)")
_PROGRESS = re.compile(r"progress=(\w+)")


class FFmpegTimeout(Exception):
    """Raised when FFmpeg exceeds the allowed timeout."""

    pass


class FFmpegError(Exception):
    """Raised when FFmpeg or FFprobe fails."""

    pass


def parse_progress_ms(line: str) -> Optional[int]:
    """
    Current output position in milliseconds from one progress line.

    Prefers out_time_us, then out_time_ms (which FFmpeg also reports in
    microseconds despite its name), then the HH:MM:SS.micro string.

    Example:
        >>> parse_progress_ms("out_time_us=1500000")
        1500
        >>> parse_progress_ms("out_time=00:00:02.250000")
        2250
    """
    match = _TIME_US.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = _TIME_MS.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = _TIME_STR.search(line)
    if match:
        hours, minutes, seconds = (int(match.group(i)) for i in range(1, 4))
        micros = int(match.group(4).ljust(6, "0")[:6])
        return hours * 3600000 + minutes * 60000 + seconds * 1000 + micros // 1000

    return None


def run_ffmpeg(
    cmd: List[str],
    total_duration_ms: int = 0,
    progress_callback: Optional[ProgressCallback] = None,
    timeout_seconds: int = 1800,
    label: str = "ffmpeg",
) -> None:
    """
    Run an FFmpeg command to completion.

    Stderr goes to a temporary file so a chatty FFmpeg never blocks on a
    full pipe. A watchdog timer kills the process group once the timeout
    passes, whether or not FFmpeg is still writing progress.

    Args:
        cmd: Full FFmpeg command (without -progress options)
        total_duration_ms: Source duration, used to compute percentages
        progress_callback: Optional function called with (percent, message)
        timeout_seconds: Maximum allowed runtime in seconds
        label: Short name used in log lines (e.g. the rendition name)

    Raises:
        FFmpegTimeout: If FFmpeg exceeds the timeout
        FFmpegError: If FFmpeg cannot start or exits non-zero

    Example:
        run_ffmpeg(
            ["ffmpeg", "-y", "-i", "in.mp4", "-hls_time", "10", "out/playlist.m3u8"],
            total_duration_ms=60000,
            progress_callback=lambda p, m: print(p, m),
            label="720p",
        )
    """
    full_cmd = cmd + ["-progress", "pipe:1", "-nostats"]
    logger.info(f"[{label}] Starting FFmpeg (timeout={timeout_seconds}s)")
    logger.debug(f"[{label}] FFmpeg command: {' '.join(full_cmd)}")

    stderr_file = tempfile.TemporaryFile()
    try:
        # New session so the whole process tree can be killed on timeout
        process = subprocess.Popen(
            full_cmd,
            stdout=subprocess.PIPE,
            stderr=stderr_file,
            universal_newlines=True,
            start_new_session=True,
        )
    except OSError as e:
        stderr_file.close()
        raise FFmpegError(f"[{label}] Could not start FFmpeg: {e}")

    started = time.time()
    timed_out = threading.Event()

    def on_timeout() -> None:
        timed_out.set()
        logger.warning(f"[{label}] FFmpeg timeout after {time.time() - started:.1f}s")
        _kill_process_group(process)

    watchdog = threading.Timer(timeout_seconds, on_timeout)
    watchdog.daemon = True
    watchdog.start()
    last_percent = -1

    try:
        for raw_line in process.stdout:
            line = raw_line.strip()

            done = _PROGRESS.search(line)
            if done and done.group(1) == "end":
                break

            current_ms = parse_progress_ms(line)
            if progress_callback and current_ms is not None and total_duration_ms > 0:
                percent = min(99, int(current_ms * 100 / total_duration_ms))
                if percent > last_percent:
                    last_percent = percent
                    progress_callback(percent, f"{label}: {percent}%")

        return_code = process.wait()

        if timed_out.is_set():
            raise FFmpegTimeout(f"[{label}] FFmpeg exceeded timeout of {timeout_seconds} seconds")

        if return_code != 0:
            message = f"[{label}] FFmpeg failed with code {return_code}"
            stderr_output = _read_tail(stderr_file)
            if stderr_output:
                message += f": {stderr_output}"
            logger.error(message)
            raise FFmpegError(message)

    except (FFmpegTimeout, FFmpegError):
        raise

    except Exception as e:
        logger.error(f"[{label}] Unexpected error while running FFmpeg: {e}", exc_info=True)
        _kill_process_group(process)
        process.wait()
        raise FFmpegError(f"[{label}] FFmpeg error: {e}")

    finally:
        watchdog.cancel()
        if process.stdout:
            process.stdout.close()
        stderr_file.close()

    logger.info(f"[{label}] FFmpeg finished in {time.time() - started:.1f}s")
    if progress_callback:
        progress_callback(100, f"{label}: done")


def _read_tail(stream: IO[bytes], limit: int = STDERR_TAIL_CHARS) -> str:
    """Last `limit` bytes of a captured stream, decoded."""
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(max(0, size - limit))
    return stream.read().decode("utf-8", errors="replace").strip()


def run_ffprobe(path: str, timeout_seconds: int = 30) -> Dict[str, Any]:
    """
    Probe a media file and return FFprobe's JSON output.

    Raises:
        FFmpegError: If FFprobe fails or returns invalid JSON
    """
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_seconds)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise FFmpegError(f"ffprobe failed for {path}: {e}")

    if result.returncode != 0:
        raise FFmpegError(f"ffprobe failed for {path}: {result.stderr[-STDERR_TAIL_CHARS:]}")

    try:
        return json.loads(result.stdout or "{}")
    except json.JSONDecodeError as e:
        raise FFmpegError(f"ffprobe returned invalid JSON for {path}: {e}")


def _kill_process_group(process: subprocess.Popen) -> None:
    """Kill FFmpeg and its process group with SIGKILL."""
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("FFmpeg process already exited")
    except OSError as e:
        logger.warning(f"Error killing process group: {e}")
        process.kill()


def validate_ffmpeg_available() -> bool:
    """
    Check if FFmpeg is available and working.

    Returns:
        True if FFmpeg is available, False otherwise
    """
    try:
        result = subprocess.run(["ffmpeg", "-version"], capture_output=True, timeout=5)
        return result.returncode == 0
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
