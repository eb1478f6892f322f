"""
Playlist model, assembly and request-time rewriting.
"""

from .assembler import (
    AUDIO_GROUP_ID,
    DEFAULT_CODECS,
    SUBTITLES_GROUP_ID,
    ManifestAssembler,
    check_referential_integrity,
    expand_base_uri,
)
from .playlist import (
    Header,
    MasterManifest,
    MediaDeclaration,
    OtherTag,
    VariantDeclaration,
    VersionTag,
    parse_master,
    render_track_playlist,
    serialize_master,
    validate_manifest,
)
from .rewriter import ManifestRewriter, RewriteContext, optimize_manifest
from .uri import (
    AUDIO_PREFIX,
    SUBTITLES_PREFIX,
    fix_track_uris,
    generate_track_uri,
    normalize_track_uri,
    validate_track_uri,
)

__all__ = [
    # Model
    "Header",
    "MasterManifest",
    "MediaDeclaration",
    "OtherTag",
    "VariantDeclaration",
    "VersionTag",
    "parse_master",
    "render_track_playlist",
    "serialize_master",
    "validate_manifest",
    # Assembly
    "AUDIO_GROUP_ID",
    "DEFAULT_CODECS",
    "SUBTITLES_GROUP_ID",
    "ManifestAssembler",
    "check_referential_integrity",
    "expand_base_uri",
    # Rewriting
    "ManifestRewriter",
    "RewriteContext",
    "optimize_manifest",
    # Track URIs
    "AUDIO_PREFIX",
    "SUBTITLES_PREFIX",
    "fix_track_uris",
    "generate_track_uri",
    "normalize_track_uri",
    "validate_track_uri",
]
