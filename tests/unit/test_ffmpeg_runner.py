"""
Unit tests for run_ffmpeg() against stand-in FFmpeg scripts.

Tests:
- Large stderr output does not block the run
- Timeout enforced while FFmpeg is silent
- Stderr tail in the raised error
- Progress parsed from -progress output
- FFmpeg started in its own session
"""

import os
import stat
import subprocess
import time
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from hlsforge.tasks.ffmpeg_runner import FFmpegError, FFmpegTimeout, run_ffmpeg

pytestmark = pytest.mark.skipif(os.name != "posix", reason="stand-in FFmpeg is a shell script")


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable shell script standing in for ffmpeg."""

    def _write(body: str) -> str:
        script = tmp_path / "ffmpeg"
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        return str(script)

    return _write


class TestRunFFmpeg:
    """Tests for run_ffmpeg()."""

    def test_large_stderr_does_not_block(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg("head -c 300000 /dev/zero | tr '\\0' 'x' >&2\necho progress=end\nexit 0")

        started = time.time()
        run_ffmpeg([ffmpeg], timeout_seconds=10)

        assert time.time() - started < 10

    def test_timeout_while_silent(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg("sleep 30")

        started = time.time()
        with pytest.raises(FFmpegTimeout, match="timeout of 1 seconds"):
            run_ffmpeg([ffmpeg], timeout_seconds=1, label="360p")

        assert time.time() - started < 10

    def test_timeout_after_stderr_flood(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg("head -c 300000 /dev/zero | tr '\\0' 'x' >&2\nsleep 30")

        started = time.time()
        with pytest.raises(FFmpegTimeout):
            run_ffmpeg([ffmpeg], timeout_seconds=1)

        assert time.time() - started < 10

    def test_failure_carries_stderr_tail(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg("echo 'Invalid data found when processing input' >&2\nexit 3")

        with pytest.raises(FFmpegError, match="code 3: Invalid data found"):
            run_ffmpeg([ffmpeg], label="480p")

    def test_progress_reported(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg(
            "echo out_time_us=5000000\necho progress=continue\n"
            "echo out_time_us=10000000\necho progress=end\nexit 0"
        )
        reports = []

        run_ffmpeg(
            [ffmpeg],
            total_duration_ms=20000,
            progress_callback=lambda p, m: reports.append((p, m)),
            label="720p",
        )

        assert reports == [(25, "720p: 25%"), (50, "720p: 50%"), (100, "720p: done")]

    def test_started_in_new_session(self, fake_ffmpeg):
        ffmpeg = fake_ffmpeg("echo progress=end")

        with patch("hlsforge.tasks.ffmpeg_runner.subprocess.Popen", wraps=subprocess.Popen) as mock_popen:
            run_ffmpeg([ffmpeg])

        kwargs = mock_popen.call_args.kwargs
        assert kwargs["start_new_session"] is True
        assert "preexec_fn" not in kwargs

    def test_missing_binary(self, tmp_path):
        with pytest.raises(FFmpegError, match="Could not start FFmpeg"):
            run_ffmpeg([str(tmp_path / "no-such-ffmpeg")])
