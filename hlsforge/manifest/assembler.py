"""
Manifest Assembler

Builds the master manifest from successful encode outcomes and attaches
audio/subtitle media declarations to an existing manifest.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from ..errors import ReferentialIntegrityViolation
from ..schemas.media import EncodeSuccess
from .playlist import MasterManifest, MediaDeclaration, VariantDeclaration

# H.264 baseline + AAC-LC, declared for every variant
DEFAULT_CODECS = "avc1.42E01E,mp4a.40.2"

AUDIO_GROUP_ID = "audio"
SUBTITLES_GROUP_ID = "subs"


def normalize_base_path(base_path: Optional[str]) -> str:
    """Ensure a non-empty base path ends with a single '/'."""
    if not base_path:
        return ""
    return base_path if base_path.endswith("/") else f"{base_path}/"


def expand_base_uri(template: str, video_id: str, base_path: Optional[str] = None) -> str:
    """
    Substitute the job tokens into a base URI template.

    Example:
        >>> expand_base_uri("http://host/out/{basePath}{videoId}/", "v1", "lib")
        'http://host/out/lib/v1/'
    """
    return template.replace("{videoId}", video_id).replace("{basePath}", normalize_base_path(base_path))


def check_referential_integrity(manifest: MasterManifest) -> None:
    """
    Verify every variant group reference has a matching media declaration.

    Raises:
        ReferentialIntegrityViolation: On the first dangling reference
    """
    audio_groups = set(manifest.media_groups("AUDIO"))
    subtitle_groups = set(manifest.media_groups("SUBTITLES"))

    for variant in manifest.variants:
        if variant.audio_group_ref and variant.audio_group_ref not in audio_groups:
            raise ReferentialIntegrityViolation(variant.audio_group_ref, "AUDIO", variant.uri)
        if variant.subtitles_group_ref and variant.subtitles_group_ref not in subtitle_groups:
            raise ReferentialIntegrityViolation(variant.subtitles_group_ref, "SUBTITLES", variant.uri)


class ManifestAssembler:
    """
    Builds and mutates master manifests.

    Both operations return a new MasterManifest; the input is never
    modified in place.
    """

    def __init__(
        self,
        base_uri_template: str,
        codecs: str = DEFAULT_CODECS,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_uri_template = base_uri_template
        self.codecs = codecs
        self.logger = logger or logging.getLogger(__name__)

    def build(
        self,
        successes: Iterable[EncodeSuccess],
        video_id: str,
        base_path: Optional[str] = None,
    ) -> MasterManifest:
        """
        Build a master manifest from successful encode outcomes.

        Variants are ordered by ascending bandwidth here and again at
        serialization, so completion order of the encode jobs never leaks
        into the manifest.

        Args:
            successes: Successful outcomes of one conversion batch
            video_id: Value for the {videoId} token
            base_path: Value for the {basePath} token

        Returns:
            MasterManifest with header, version 3 and one variant per success
        """
        base_uri = expand_base_uri(self.base_uri_template, video_id, base_path)
        manifest = MasterManifest.empty()

        for success in sorted(successes, key=lambda s: s.bandwidth_bps):
            variant = VariantDeclaration(
                bandwidth=success.bandwidth_bps,
                uri=f"{base_uri}{success.variant_manifest_relative_path}",
                frame_size=success.rendition.frame_size,
                codecs=self.codecs,
            )
            if not manifest.add_variant(variant):
                self.logger.warning(f"[{video_id}] Duplicate variant skipped: {variant.uri}")

        self.logger.info(f"[{video_id}] Master manifest built with {len(manifest.variants)} variant(s)")
        return manifest

    def attach_media(
        self,
        manifest: MasterManifest,
        decls: List[MediaDeclaration],
    ) -> MasterManifest:
        """
        Attach media declarations to a master manifest.

        Each declaration is inserted right after the version tag, keeping
        the given order. A declaration whose (group_id, uri) is already
        present is skipped. Variants missing an audio or subtitles
        reference get the group id of the first declaration of that type.

        Raises:
            ReferentialIntegrityViolation: If the result has a dangling reference
        """
        result = manifest.copy()
        insert_at = result.version_index() + 1
        added = 0

        for decl in decls:
            if result.insert_media(insert_at, decl):
                insert_at += 1
                added += 1
            else:
                self.logger.debug(f"Media declaration already present: {decl.group_id} {decl.uri}")

        for decl in decls:
            for variant in result.variants:
                updated = variant
                if decl.type == "AUDIO" and not variant.audio_group_ref:
                    updated = replace(variant, audio_group_ref=decl.group_id)
                elif decl.type == "SUBTITLES" and not variant.subtitles_group_ref:
                    updated = replace(variant, subtitles_group_ref=decl.group_id)
                if updated is not variant:
                    result.replace_line(variant, updated)

        check_referential_integrity(result)
        self.logger.info(f"Attached {added} media declaration(s) ({len(decls) - added} already present)")
        return result
