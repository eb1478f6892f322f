"""
Shared test fixtures for hlsforge tests.

Provides:
- Isolated storage root (videos/ and processed_videos/)
- Manifest store bound to a temporary directory
- Mock Redis/RQ for queue and API tests
- Async HTTP client for the FastAPI app
- Fake transcoding engine for orchestrator and pipeline tests
"""

import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, Generator, List, Optional, Set, Tuple
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app modules
os.environ["REDIS_URL"] = "redis://localhost:6379/15"

_test_storage_dir = tempfile.mkdtemp(prefix="hlsforge_test_")
os.environ["STORAGE_PATH"] = _test_storage_dir
os.environ["PROXY_BASE_URL_TEMPLATE"] = "http://build-host/output/{basePath}{videoId}/"

from hlsforge.core.storage import ManifestStore, get_processed_dir, get_videos_dir
from hlsforge.main import app
from hlsforge.schemas.media import EncodeJob, Rendition, SourceMetadata


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def storage_root() -> Generator[Path, None, None]:
    """Empty videos/ and processed_videos/ under the configured STORAGE_PATH."""
    root = Path(_test_storage_dir)
    for directory in (get_videos_dir(), get_processed_dir()):
        directory.mkdir(parents=True, exist_ok=True)
    yield root
    for directory in (get_videos_dir(), get_processed_dir()):
        shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def store(tmp_path: Path) -> ManifestStore:
    """Manifest store rooted in a per-test temporary directory."""
    return ManifestStore(root=tmp_path / "processed_videos")


@pytest.fixture
def write_output(storage_root: Path) -> Callable[[str, str, str], Path]:
    """Write a file into a video's output directory under the configured storage."""

    def _write(video_id: str, relative: str, content: str) -> Path:
        path = get_processed_dir() / video_id / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_source(storage_root: Path) -> Callable[[str], Path]:
    """Create a placeholder source video."""

    def _write(filename: str, size: int = 1024) -> Path:
        path = get_videos_dir() / filename
        path.write_bytes(b"\x00" * size)
        return path

    return _write


# =============================================================================
# Mock Redis/Queue Fixtures
# =============================================================================


@pytest.fixture
def mock_redis() -> Generator[MagicMock, None, None]:
    """Mock Redis connection for tests."""
    mock = MagicMock()
    mock.hgetall.return_value = {}
    mock.hset.return_value = True
    mock.expire.return_value = True
    mock.delete.return_value = 1
    mock.pipeline.return_value = MagicMock(
        hset=MagicMock(return_value=mock),
        expire=MagicMock(return_value=mock),
        execute=MagicMock(return_value=[True, True]),
    )

    with patch("hlsforge.core.redis.get_redis_connection", return_value=mock):
        with patch("hlsforge.core.queue.get_redis_connection", return_value=mock):
            yield mock


@pytest.fixture
def mock_rq_job() -> Generator[MagicMock, None, None]:
    """Mock RQ Job returned by Queue.enqueue."""
    mock_job = MagicMock()
    mock_job.id = "convert:intro"
    mock_job.get_status.return_value = "queued"
    mock_job.is_finished = False
    mock_job.is_failed = False
    mock_job.result = None
    mock_job.exc_info = None
    mock_job.enqueued_at = datetime.now(timezone.utc)
    mock_job.started_at = None
    mock_job.ended_at = None

    with patch("hlsforge.core.queue.Queue") as mock_queue_class:
        mock_queue = MagicMock()
        mock_queue.name = "hlsforge:conversion"
        mock_queue.enqueue.return_value = mock_job
        mock_queue_class.return_value = mock_queue
        yield mock_job


# =============================================================================
# Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_client(mock_redis: MagicMock, storage_root: Path) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the FastAPI application."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Media Fixtures
# =============================================================================


class FakeEngine:
    """
    Transcoding engine double.

    Renditions whose name is in `fail` raise; the rest succeed with the
    bandwidth derived from their target bitrate.
    """

    def __init__(self, fail: Set[str] = frozenset(), delays: Optional[Dict[str, float]] = None):
        self.fail = set(fail)
        self.delays = delays or {}
        self.calls: List[str] = []

    def encode(self, job: EncodeJob) -> Tuple[str, int]:
        name = job.rendition.name
        self.calls.append(name)
        time.sleep(self.delays.get(name, 0))
        if name in self.fail:
            raise RuntimeError(f"ffmpeg exited with code 1 for {name}")
        return f"{name}/playlist.m3u8", int(job.rendition.target_bitrate.rstrip("k")) * 1000


@pytest.fixture
def make_engine() -> Callable[..., FakeEngine]:
    """Factory for FakeEngine(fail=..., delays=...)."""
    return FakeEngine


@pytest.fixture
def source_720p() -> SourceMetadata:
    return SourceMetadata(width=1280, height=720, bitrate="2500k", duration_seconds=12.5, codec="h264")


@pytest.fixture
def ladder() -> List[Rendition]:
    return [
        Rendition("360p", "640x360", "800k"),
        Rendition("480p", "854x480", "1200k"),
        Rendition("720p", "1280x720", "1500k"),
    ]
