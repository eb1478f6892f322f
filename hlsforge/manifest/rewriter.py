"""
Runtime Manifest Rewriter & Optimizer

Turns a stored playlist into one whose URIs are valid for the current
request, then drops repeated declarations:
- Absolute URLs built from the origin template become {requestBaseUrl}/{suffix}
- Bare relative URIs are prefixed with {requestBaseUrl}/
- Bare caption resources (*.vtt) referenced from the master playlist are
  replaced by their subtitle sub-manifest URI
- Repeated #EXT-X-MEDIA (by LANGUAGE and URI) and repeated
  #EXT-X-STREAM-INF + URI pairs are removed

Lines are parsed into attribute lists before any URI is touched; lines
whose URIs do not change are emitted byte-for-byte. The stored text is
never modified, every call works on its own copy.
"""

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Set, Tuple

from ..errors import ManifestMalformed
from .attributes import format_attribute_list, get_attribute, parse_attribute_list, split_tag
from .playlist import HEADER, MEDIA_TAG, STREAM_INF_TAG
from .uri import is_absolute

# Tags whose attribute list may carry a URI attribute
URI_ATTRIBUTE_TAGS = {
    "#EXT-X-MEDIA",
    "#EXT-X-I-FRAME-STREAM-INF",
    "#EXT-X-KEY",
    "#EXT-X-SESSION-KEY",
    "#EXT-X-MAP",
    "#EXT-X-SESSION-DATA",
    "#EXT-X-RENDITION-REPORT",
    "#EXT-X-PRELOAD-HINT",
}

CAPTION_EXTENSION = ".vtt"
CAPTION_PREFIX = "sub_"


@dataclass(frozen=True)
class RewriteContext:
    """Request scope for a rewrite."""

    video_id: str
    request_base_url: str

    @property
    def base(self) -> str:
        return self.request_base_url.rstrip("/")


def compile_origin_pattern(template: str, video_id: str) -> Pattern:
    """
    Turn a build-time base URI template into a prefix regex.

    {videoId} matches the literal video id and {basePath} matches any
    (possibly empty) path ending in '/'.

    Example:
        >>> p = compile_origin_pattern("http://build-host/output/{basePath}{videoId}/", "v1")
        >>> p.match("http://build-host/output/v1/audio/en.m3u8").end()
        28
    """
    pattern = ""
    for piece in re.split(r"(\{videoId\}|\{basePath\})", template):
        if piece == "{videoId}":
            pattern += re.escape(video_id)
        elif piece == "{basePath}":
            pattern += r"(?:[^\s\"]*?/)??"
        else:
            pattern += re.escape(piece)
    return re.compile(pattern)


def caption_language(uri: str) -> str:
    """
    Language code derived from a caption filename.

    Example:
        >>> caption_language("subtitles/sub_es.vtt")
        'es'
    """
    name = posixpath.basename(uri)
    if name.endswith(CAPTION_EXTENSION):
        name = name[: -len(CAPTION_EXTENSION)]
    if name.startswith(CAPTION_PREFIX):
        name = name[len(CAPTION_PREFIX):]
    return name


class ManifestRewriter:
    """
    Request-time playlist rewriter.

    Args:
        origin_template: Base URI template used when the master playlist
            was built, e.g. "http://localhost:3000/stream-resource/{basePath}{videoId}/"
        logger: Optional logger, defaults to the module logger
    """

    def __init__(self, origin_template: str, logger: Optional[logging.Logger] = None):
        self.origin_template = origin_template
        self.logger = logger or logging.getLogger(__name__)

    def rewrite(self, raw: str, context: RewriteContext, optimize: bool = True) -> str:
        """
        Rewrite URIs for the request context and deduplicate declarations.

        Pure function of (raw, context): identical inputs give identical output.

        Raises:
            ManifestMalformed: If the first non-blank line is not #EXTM3U
        """
        rewritten = self.rewrite_uris(raw, context)
        if optimize:
            rewritten = optimize_manifest(rewritten, self.logger)
        return rewritten

    def rewrite_uris(self, raw: str, context: RewriteContext) -> str:
        """Single rewrite pass over every URI line and URI attribute."""
        lines = raw.replace("\r\n", "\n").split("\n")
        first = next((line.strip() for line in lines if line.strip()), "")
        if not first.startswith(HEADER):
            raise ManifestMalformed("Playlist must start with #EXTM3U", errors=[first[:80]])

        origin = compile_origin_pattern(self.origin_template, context.video_id)
        out: List[str] = []
        # URI lines after a variant declaration point at playlists; after
        # #EXTINF they point at media segments and keep their extension.
        expect_playlist_uri = False
        changed = 0

        for line in lines:
            stripped = line.strip()

            if not stripped:
                out.append(line)
                continue

            if stripped.startswith("#"):
                tag, attr_text = split_tag(stripped)
                expect_playlist_uri = tag == STREAM_INF_TAG
                if tag in URI_ATTRIBUTE_TAGS and "URI=" in attr_text:
                    new_line = self._rewrite_attribute_line(tag, attr_text, origin, context)
                    if new_line is not None:
                        out.append(new_line)
                        changed += 1
                        continue
                out.append(line)
                continue

            new_uri = self.rewrite_uri(stripped, origin, context, allow_caption=expect_playlist_uri)
            expect_playlist_uri = False
            if new_uri != stripped:
                changed += 1
            out.append(new_uri)

        self.logger.debug(f"[{context.video_id}] Rewrote {changed} line(s) for {context.base}")
        return "\n".join(out)

    def _rewrite_attribute_line(
        self,
        tag: str,
        attr_text: str,
        origin: Pattern,
        context: RewriteContext,
    ) -> Optional[str]:
        attrs = parse_attribute_list(attr_text)
        dirty = False
        for attr in attrs:
            if attr.name != "URI":
                continue
            new_uri = self.rewrite_uri(attr.value, origin, context, allow_caption=tag == MEDIA_TAG)
            if new_uri != attr.value:
                attr.value = new_uri
                dirty = True
        if not dirty:
            return None
        return f"{tag}:{format_attribute_list(attrs)}"

    def rewrite_uri(
        self,
        uri: str,
        origin: Pattern,
        context: RewriteContext,
        allow_caption: bool = False,
    ) -> str:
        """
        Rewrite one URI.

        Args:
            uri: URI from a line or URI attribute
            origin: Compiled origin template (see compile_origin_pattern)
            context: Request context
            allow_caption: Replace bare *.vtt resources by their sub-manifest

        Returns:
            Rewritten URI (unchanged when no rule applies)
        """
        base = context.base
        match = origin.match(uri)
        if match:
            return f"{base}/{uri[match.end():]}"
        if is_absolute(uri):
            return uri
        if allow_caption and uri.endswith(CAPTION_EXTENSION):
            language = caption_language(uri)
            if language:
                return f"{base}/subtitles/{language}.m3u8"
            return f"{base}/subtitles/{uri}"
        return f"{base}/{uri}"


def optimize_manifest(text: str, logger: Optional[logging.Logger] = None) -> str:
    """
    Drop repeated media declarations and variant entries.

    - #EXT-X-MEDIA lines are keyed by (LANGUAGE, URI); lines lacking
      either are always kept
    - #EXT-X-STREAM-INF lines are keyed together with their URI line by
      literal text

    Idempotent: optimize_manifest(optimize_manifest(m)) == optimize_manifest(m).
    """
    log = logger or logging.getLogger(__name__)
    lines = text.split("\n")
    kept: List[str] = []
    seen_media: Set[Tuple[str, str]] = set()
    seen_streams: Set[Tuple[str, str]] = set()
    dropped = 0

    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if stripped.startswith(MEDIA_TAG + ":"):
            attrs = parse_attribute_list(split_tag(stripped)[1])
            language = get_attribute(attrs, "LANGUAGE")
            uri = get_attribute(attrs, "URI")
            if language is not None and uri is not None:
                key = (language, uri)
                if key in seen_media:
                    dropped += 1
                    i += 1
                    continue
                seen_media.add(key)
            kept.append(line)

        elif stripped.startswith(STREAM_INF_TAG):
            next_line = lines[i + 1] if i + 1 < len(lines) else ""
            has_uri = bool(next_line.strip()) and not next_line.strip().startswith("#")
            key = (stripped, next_line.strip() if has_uri else "")
            if key in seen_streams:
                dropped += 1
            else:
                seen_streams.add(key)
                kept.append(line)
                if has_uri:
                    kept.append(next_line)
            if has_uri:
                i += 1

        else:
            kept.append(line)
        i += 1

    if dropped:
        log.info(f"Optimizer removed {dropped} duplicate declaration(s)")
    return "\n".join(kept)
