"""
Streaming Service

Serve-time access to a video's HLS output. Every playlist is read from
the ManifestStore, validated, and rewritten for the request's base URL.
Stored files are never modified.
"""

import logging
import posixpath
from pathlib import Path
from typing import Optional

from ..core.config import get_settings
from ..core.storage import MASTER_ROLE, ManifestStore
from ..errors import ManifestMalformed, ManifestNotFound
from ..manifest.playlist import render_track_playlist, validate_manifest
from ..manifest.rewriter import ManifestRewriter, RewriteContext

CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".vtt": "text/vtt",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

MANIFEST_CACHE_CONTROL = "no-cache"
SEGMENT_CACHE_CONTROL = "public, max-age=31536000"


def content_type_for(filename: str) -> str:
    """
    MIME type served for a file.

    Example:
        >>> content_type_for("segment001.ts")
        'video/mp2t'
    """
    return CONTENT_TYPES.get(posixpath.splitext(filename)[1].lower(), DEFAULT_CONTENT_TYPE)


def cache_control_for(filename: str) -> str:
    """Playlists may change between conversions, segments never do."""
    return MANIFEST_CACHE_CONTROL if filename.endswith(".m3u8") else SEGMENT_CACHE_CONTROL


class StreamingService:
    """
    Playlists and resources of converted videos.

    Args:
        store: Manifest store, defaults to the configured processed dir
        rewriter: Rewriter, defaults to one for the configured origin template
        logger: Optional logger, defaults to the module logger
    """

    def __init__(
        self,
        store: Optional[ManifestStore] = None,
        rewriter: Optional[ManifestRewriter] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store or ManifestStore()
        self.logger = logger or logging.getLogger(__name__)
        self.rewriter = rewriter or ManifestRewriter(
            get_settings().proxy_base_url_template, logger=self.logger
        )

    def _load(self, video_id: str, role: str) -> str:
        """
        Read and validate a stored playlist.

        Raises:
            ManifestNotFound: If the playlist does not exist
            ManifestMalformed: If validation fails
        """
        raw = self.store.read_manifest(video_id, role)
        errors = validate_manifest(raw)
        if errors:
            self.logger.error(f"[{video_id}] Stored playlist '{role}' is invalid: {errors}")
            raise ManifestMalformed(f"Invalid playlist '{role}' for video '{video_id}'", errors)
        return raw

    def master_playlist(self, video_id: str, base_url: str) -> str:
        """Master playlist rewritten for `base_url`, with duplicates removed."""
        raw = self._load(video_id, MASTER_ROLE)
        return self.rewriter.rewrite(raw, RewriteContext(video_id, base_url), optimize=True)

    def variant_playlist(self, video_id: str, quality: str, base_url: str) -> str:
        """Rendition playlist; its segment URIs are prefixed with `base_url`."""
        raw = self._load(video_id, quality)
        return self.rewriter.rewrite(raw, RewriteContext(video_id, base_url), optimize=False)

    def audio_playlist(self, video_id: str, filename: str, base_url: str) -> str:
        raw = self._load(video_id, f"audio/{filename}")
        return self.rewriter.rewrite(raw, RewriteContext(video_id, base_url), optimize=False)

    def subtitle_playlist(self, video_id: str, filename: str) -> str:
        """
        Subtitle sub-manifest, as stored or generated from its caption file.

        For "es.m3u8" the caption is looked up as subtitles/es.vtt, then
        subtitles/sub_es.vtt.

        Raises:
            ManifestNotFound: If neither a sub-manifest nor a caption exists
        """
        role = f"subtitles/{filename}"
        if self.store.exists(video_id, role):
            return self._load(video_id, role)

        language = posixpath.splitext(filename)[0]
        for caption in (f"{language}.vtt", f"sub_{language}.vtt"):
            path = self.resource_path(video_id, f"subtitles/{caption}")
            if path is not None:
                self.logger.debug(f"[{video_id}] Generated subtitle playlist for {caption}")
                return render_track_playlist(caption)

        raise ManifestNotFound(video_id, role)

    def resource_path(self, video_id: str, relative: str) -> Optional[Path]:
        """Path of an existing file in the video's output, or None."""
        try:
            path = self.store.path_for(video_id, relative)
        except ValueError:
            self.logger.warning(f"[{video_id}] Rejected resource path {relative!r}")
            return None
        return path if path.is_file() else None
