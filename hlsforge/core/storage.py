"""
File Storage & Security

Provides the on-disk layout for sources and HLS output with:
- Path traversal prevention
- Video id and filename validation
- Manifest persistence addressed by (video id, role)
- Atomic manifest writes

Layout:
    {STORAGE_PATH}/videos/{video_id}.mp4
    {STORAGE_PATH}/processed_videos/{video_id}/master.m3u8
    {STORAGE_PATH}/processed_videos/{video_id}/{quality}/playlist.m3u8
    {STORAGE_PATH}/processed_videos/{video_id}/audio/{lang}.m3u8
    {STORAGE_PATH}/processed_videos/{video_id}/subtitles/{lang}.m3u8
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional

from ..errors import ManifestNotFound
from .config import get_settings

logger = logging.getLogger(__name__)

# Source containers accepted for conversion
VIDEO_EXTENSIONS = (".mp4", ".avi", ".mov", ".mkv")

MASTER_ROLE = "master"

_VIDEO_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_QUALITY = re.compile(r"^\d+p$")


def get_storage_root() -> Path:
    """
    Get the storage root path from configuration.

    Returns:
        Path: Resolved storage root path

    Raises:
        ValueError: If storage path is not configured
    """
    storage_path = get_settings().storage_path

    if not storage_path:
        raise ValueError("STORAGE_PATH environment variable not set")

    return Path(storage_path).resolve()


def get_videos_dir() -> Path:
    """Directory holding source videos."""
    return get_storage_root() / "videos"


def get_processed_dir() -> Path:
    """Directory holding per-video HLS output."""
    return get_storage_root() / "processed_videos"


def _mkdir_world_writable(path: Path) -> None:
    """
    Create a directory (and all parents) with world-writable permissions (0o777).
    Required when the API and the worker run as different users on a shared volume.
    """
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, 0o777)


def validate_video_id(video_id: str) -> bool:
    """
    Validate a video id used as a directory and file stem.

    Example:
        >>> validate_video_id("intro-2024_v1")
        True
        >>> validate_video_id("../etc")
        False
    """
    return bool(video_id) and bool(_VIDEO_ID.match(video_id)) and ".." not in video_id


def is_quality_name(name: str) -> bool:
    """True for rendition directory names such as "720p"."""
    return bool(_QUALITY.match(name))


def _ensure_within(path: Path, root: Path) -> Path:
    resolved_path = path.resolve()
    resolved_root = root.resolve()
    if resolved_path != resolved_root and not str(resolved_path).startswith(str(resolved_root) + os.sep):
        raise ValueError("Path traversal detected: path escapes storage root")
    return resolved_path


def safe_relative_path(relative: str) -> str:
    """
    Validate a relative path inside a video's output directory.

    Raises:
        ValueError: On absolute paths, parent references or control characters

    Example:
        >>> safe_relative_path("audio/en.m3u8")
        'audio/en.m3u8'
    """
    if not relative or relative.startswith("/") or "\\" in relative:
        raise ValueError(f"Invalid relative path: {relative!r}")
    parts = relative.split("/")
    for part in parts:
        if part in ("", ".", "..") or re.search(r"[\x00-\x1f<>:\"|?*]", part):
            raise ValueError(f"Invalid relative path: {relative!r}")
    return "/".join(parts)


def find_source_video(video_id: str, videos_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Locate the source file for a video id.

    Returns:
        Path to the first matching source, or None
    """
    if not validate_video_id(video_id):
        return None
    directory = videos_dir or get_videos_dir()
    for ext in VIDEO_EXTENSIONS:
        candidate = directory / f"{video_id}{ext}"
        if candidate.is_file():
            return candidate
    return None


def list_source_videos(videos_dir: Optional[Path] = None) -> List[Path]:
    """All source videos, sorted by filename."""
    directory = videos_dir or get_videos_dir()
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS and validate_video_id(p.stem)
    )


class ManifestStore:
    """
    Manifest persistence addressed by video id and role.

    Roles:
        "master"                the master playlist
        "<N>p"                  a rendition playlist, e.g. "720p"
        "audio/<file>.m3u8"     an audio sub-manifest
        "subtitles/<file>.m3u8" a subtitle sub-manifest
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        master_playlist_name: Optional[str] = None,
        resolution_playlist_name: Optional[str] = None,
    ):
        settings = get_settings()
        self.root = Path(root) if root is not None else get_processed_dir()
        self.master_playlist_name = master_playlist_name or settings.master_playlist_name
        self.resolution_playlist_name = resolution_playlist_name or settings.resolution_playlist_name

    def output_dir(self, video_id: str) -> Path:
        """
        Output directory for a video.

        Raises:
            ValueError: If the video id is invalid
        """
        if not validate_video_id(video_id):
            raise ValueError(f"Invalid video id: {video_id!r}")
        return _ensure_within(self.root / video_id, self.root)

    def ensure_output_dir(self, video_id: str) -> Path:
        path = self.output_dir(video_id)
        _mkdir_world_writable(path)
        return path

    def role_path(self, role: str) -> str:
        """Relative path of a role inside the output directory."""
        if role == MASTER_ROLE:
            return self.master_playlist_name
        if is_quality_name(role):
            return f"{role}/{self.resolution_playlist_name}"
        return safe_relative_path(role)

    def path_for(self, video_id: str, relative: str) -> Path:
        """Absolute path of a file inside a video's output directory."""
        base = self.output_dir(video_id)
        return _ensure_within(base / safe_relative_path(relative), base)

    def exists(self, video_id: str, role: str = MASTER_ROLE) -> bool:
        try:
            return self.path_for(video_id, self.role_path(role)).is_file()
        except ValueError:
            return False

    def read_manifest(self, video_id: str, role: str = MASTER_ROLE) -> str:
        """
        Read a stored manifest.

        Raises:
            ManifestNotFound: If no manifest exists for (video_id, role)
        """
        try:
            path = self.path_for(video_id, self.role_path(role))
        except ValueError:
            raise ManifestNotFound(video_id, role)

        if not path.is_file():
            raise ManifestNotFound(video_id, role)

        return path.read_text(encoding="utf-8")

    def write_manifest(self, video_id: str, role: str, text: str) -> Path:
        """
        Write a manifest atomically (temp file + rename).

        Returns:
            Path of the written manifest
        """
        path = self.path_for(video_id, self.role_path(role))
        _mkdir_world_writable(path.parent)

        fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".m3u8", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Wrote manifest {video_id}/{path.name} ({len(text)} bytes)")
        return path

    def list_qualities(self, video_id: str) -> List[str]:
        """Rendition directories present for a video, ascending by height."""
        try:
            base = self.output_dir(video_id)
        except ValueError:
            return []
        if not base.is_dir():
            return []
        names = [p.name for p in base.iterdir() if p.is_dir() and is_quality_name(p.name)]
        return sorted(names, key=lambda n: int(n[:-1]))

    def has_directory(self, video_id: str, name: str) -> bool:
        try:
            return (self.output_dir(video_id) / name).is_dir()
        except ValueError:
            return False
