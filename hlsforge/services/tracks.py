"""
Track Integration

Turns audio and subtitle tracks into media declarations on a master
manifest. Tracks without a sub-manifest get the fixed-shape VOD playlist
pointing at their single resource (segmented audio or a WebVTT file).

TrackEditor applies the same integration to a published master when an
external track file is added after conversion.
"""

import logging
import posixpath
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.config import Settings, get_settings
from ..core.storage import MASTER_ROLE, ManifestStore
from ..manifest.assembler import AUDIO_GROUP_ID, SUBTITLES_GROUP_ID, ManifestAssembler
from ..manifest.playlist import MasterManifest, MediaDeclaration, parse_master, render_track_playlist
from ..manifest.uri import (
    AUDIO_PREFIX,
    SUBTITLES_PREFIX,
    fix_track_uris,
    generate_track_uri,
    is_absolute,
    normalize_track_uri,
    validate_track_uri,
)
from ..schemas.media import MediaTrack
from ..tasks.encode import EncodeOptions, convert_to_vtt, segment_audio_file, track_stem
from ..tasks.probe import media_duration

# Called with (relative sub-manifest uri, playlist text)
SubManifestWriter = Callable[[str, str], None]


class TrackIntegrator:
    """
    Attaches audio/subtitle tracks to master manifests.

    Args:
        assembler: Assembler whose attach_media performs the mutation
        write_sub_manifest: Persists generated sub-manifests; when omitted
            they are only kept in `generated`
        logger: Optional logger, defaults to the module logger
    """

    def __init__(
        self,
        assembler: ManifestAssembler,
        write_sub_manifest: Optional[SubManifestWriter] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.assembler = assembler
        self.write_sub_manifest = write_sub_manifest
        self.logger = logger or logging.getLogger(__name__)
        self.generated: Dict[str, str] = {}

    def integrate_audio(self, manifest: MasterManifest, tracks: List[MediaTrack]) -> MasterManifest:
        """Declare audio tracks in group "audio" and reference it from every variant."""
        return self._integrate(manifest, tracks, "AUDIO", AUDIO_GROUP_ID, AUDIO_PREFIX)

    def integrate_subtitles(self, manifest: MasterManifest, tracks: List[MediaTrack]) -> MasterManifest:
        """Declare subtitle tracks in group "subs" and reference it from every variant."""
        return self._integrate(manifest, tracks, "SUBTITLES", SUBTITLES_GROUP_ID, SUBTITLES_PREFIX)

    def _integrate(
        self,
        manifest: MasterManifest,
        tracks: List[MediaTrack],
        media_type: str,
        group_id: str,
        prefix: str,
    ) -> MasterManifest:
        decls: List[MediaDeclaration] = []

        for track in tracks:
            uri = self._sub_manifest_uri(track, prefix)
            if manifest.has_media(group_id, uri) or any(d.uri == uri for d in decls):
                self.logger.info(f"Track {track.id} already declared as {uri}, skipping")
                continue
            decls.append(
                MediaDeclaration(
                    type=media_type,
                    group_id=group_id,
                    name=track.label,
                    language=track.language or None,
                    is_default=True if track.is_default else None,
                    uri=uri,
                )
            )

        if not decls:
            return manifest.copy()

        self.logger.info(f"Integrating {len(decls)} {media_type.lower()} track(s)")
        return self.assembler.attach_media(manifest, decls)

    def _sub_manifest_uri(self, track: MediaTrack, prefix: str) -> str:
        """Existing sub-manifest URI, or a newly generated one."""
        if track.sub_manifest_uri:
            uri = normalize_track_uri(track.sub_manifest_uri, prefix)
            if not is_absolute(uri) and not validate_track_uri(uri, prefix):
                raise ValueError(f"Track {track.id} has an invalid sub-manifest URI: {track.sub_manifest_uri!r}")
            return uri

        if not track.resource:
            raise ValueError(f"Track {track.id} has neither a sub-manifest nor a media resource")

        resource = posixpath.basename(track.resource)
        uri = generate_track_uri(posixpath.splitext(resource)[0] or track.language or track.id, prefix)
        text = render_track_playlist(resource, track.duration_seconds)
        self.generated[uri] = text
        if self.write_sub_manifest is not None:
            self.write_sub_manifest(uri, text)
        self.logger.debug(f"Generated sub-manifest {uri} for track {track.id}")
        return uri


@dataclass
class TrackEditResult:
    """Outcome of adding one external track to a published master."""

    video_id: str
    track: MediaTrack
    uri: str
    added: bool


class TrackEditor:
    """
    Adds external audio and subtitle files to an already converted video.

    The stored master is parsed, the track integrated and the master
    written back atomically. Adding a language that is already declared
    replaces its media files and leaves the declarations unchanged.

    Args:
        store: Manifest store, defaults to the configured processed dir
        settings: Settings, defaults to get_settings()
        logger: Optional logger, defaults to the module logger
    """

    def __init__(
        self,
        store: Optional[ManifestStore] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or ManifestStore()
        self.options = EncodeOptions.from_settings(self.settings)
        self.logger = logger or logging.getLogger(__name__)
        self.assembler = ManifestAssembler(self.settings.proxy_base_url_template, logger=self.logger)

    def add_subtitle(
        self,
        video_id: str,
        subtitle_path: str,
        language: str,
        label: Optional[str] = None,
        is_default: bool = False,
    ) -> TrackEditResult:
        """
        Add a subtitle file (WebVTT, SRT or ASS) as subtitles/{language}.

        Raises:
            ManifestNotFound: If the video has no published master
            ManifestMalformed: If the stored master cannot be parsed
            FFmpegError: If the file cannot be converted to WebVTT
        """
        manifest = self._load(video_id)
        stem = track_stem(language)
        destination = self.store.ensure_output_dir(video_id) / "subtitles" / f"{stem}.vtt"

        if Path(subtitle_path).suffix.lower() == ".vtt":
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(subtitle_path, destination)
        else:
            convert_to_vtt(subtitle_path, str(destination), timeout_seconds=self.options.timeout_seconds)

        track = MediaTrack(
            id=f"sub_{stem}",
            language=language,
            label=label or language,
            is_default=is_default,
            resource=destination.name,
            duration_seconds=media_duration(str(destination)),
            format="vtt",
        )
        uri = generate_track_uri(stem, SUBTITLES_PREFIX)
        return self._save(video_id, manifest, track, uri, "SUBTITLES")

    def add_audio(
        self,
        video_id: str,
        audio_path: str,
        language: str,
        label: Optional[str] = None,
        is_default: bool = False,
        audio_quality: Optional[str] = None,
    ) -> TrackEditResult:
        """
        Segment an audio file into audio/{language}.m3u8 and declare it.

        Raises:
            ManifestNotFound: If the video has no published master
            ManifestMalformed: If the stored master cannot be parsed
            ValueError: If the audio quality is unknown
            FFmpegError: If the file cannot be segmented
        """
        options = self.options.with_audio_quality(audio_quality)
        manifest = self._load(video_id)

        track = MediaTrack(
            id=track_stem(language),
            language=language,
            label=label or language,
            is_default=is_default,
        )
        track = fix_track_uris([track], AUDIO_PREFIX)[0]
        stem = posixpath.splitext(posixpath.basename(track.sub_manifest_uri))[0]
        segment_audio_file(audio_path, str(self.store.ensure_output_dir(video_id)), stem, options)

        return self._save(video_id, manifest, track, track.sub_manifest_uri, "AUDIO")

    def _load(self, video_id: str) -> MasterManifest:
        return parse_master(self.store.read_manifest(video_id, MASTER_ROLE))

    def _save(
        self,
        video_id: str,
        manifest: MasterManifest,
        track: MediaTrack,
        uri: str,
        media_type: str,
    ) -> TrackEditResult:
        integrator = TrackIntegrator(
            self.assembler,
            write_sub_manifest=lambda sub_uri, text: self.store.write_manifest(video_id, sub_uri, text),
            logger=self.logger,
        )
        if media_type == "AUDIO":
            updated = integrator.integrate_audio(manifest, [track])
        else:
            updated = integrator.integrate_subtitles(manifest, [track])

        added = len(updated.media) > len(manifest.media)
        self.store.write_manifest(video_id, MASTER_ROLE, updated.serialize())
        self.logger.info(
            f"[{video_id}] {media_type.lower()} track {track.language} "
            f"{'added' if added else 'replaced'} as {uri}"
        )
        return TrackEditResult(video_id=video_id, track=track, uri=uri, added=added)
