"""
HLS Conversion Pipeline

Runs one complete conversion of a source video:
1. Probe the source
2. Plan the rendition ladder
3. Encode every rendition concurrently (settle-all)
4. Refuse to publish if any rendition failed
5. Build the master manifest
6. Segment audio streams and extract subtitles, attach them as media
7. Publish the master manifest atomically

Nothing is written to the master role until every rendition succeeded.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..core.config import Settings, get_settings
from ..core.storage import MASTER_ROLE, ManifestStore
from ..errors import HlsForgeError
from ..manifest.assembler import ManifestAssembler
from ..manifest.playlist import MasterManifest
from ..schemas.media import EncodeJob, MediaTrack, Rendition, SourceMetadata
from ..tasks.encode import EncodeOptions, FFmpegEngine, extract_subtitles, generate_audio_hls
from ..tasks.ffmpeg_runner import FFmpegError, FFmpegTimeout, ProgressCallback
from ..tasks.probe import list_audio_streams, list_subtitle_streams, probe
from .orchestrator import EncodeOrchestrator, TranscodingEngine
from .planner import plan, resolve_ladder
from .tracks import TrackIntegrator

# Builds the transcoding engine for a probed source
EngineFactory = Callable[[SourceMetadata, Optional[ProgressCallback]], TranscodingEngine]


@dataclass
class ConversionResult:
    """Published output of one conversion."""

    video_id: str
    master_path: Path
    renditions: List[Rendition] = field(default_factory=list)
    audio_tracks: List[MediaTrack] = field(default_factory=list)
    subtitle_tracks: List[MediaTrack] = field(default_factory=list)


class HlsConverter:
    """
    Source-to-HLS conversion for one video at a time.

    Args:
        store: Manifest store, defaults to the configured processed dir
        settings: Settings, defaults to get_settings()
        engine_factory: Builds the engine used for the rendition encodes,
            defaults to FFmpegEngine
        logger: Optional logger, defaults to the module logger
    """

    def __init__(
        self,
        store: Optional[ManifestStore] = None,
        settings: Optional[Settings] = None,
        engine_factory: Optional[EngineFactory] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or ManifestStore()
        self.options = EncodeOptions.from_settings(self.settings)
        self.engine_factory = engine_factory
        self.logger = logger or logging.getLogger(__name__)
        self.assembler = ManifestAssembler(self.settings.proxy_base_url_template, logger=self.logger)

    def convert(
        self,
        video_id: str,
        source_path: str,
        resolutions: Optional[List[str]] = None,
        base_path: Optional[str] = None,
        include_audio: bool = True,
        include_subtitles: bool = True,
        audio_quality: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ConversionResult:
        """
        Convert a source video and publish its master manifest.

        Args:
            video_id: Id of the video (output directory name)
            source_path: Path of the source file
            resolutions: Ladder names, defaults to the configured ones
            base_path: Value for the {basePath} token of the base URI
            include_audio: Segment and declare audio streams
            include_subtitles: Extract and declare subtitle streams
            audio_quality: AUDIO_PRESETS name applied to every audio encode
            progress: Optional function called with (percent, message)

        Returns:
            ConversionResult describing the published output

        Raises:
            InvalidSource: If the source cannot be probed
            ValueError: If a resolution name or audio quality is unknown
            BatchConversionFailed: If any rendition failed; nothing is published
        """
        report = progress or (lambda percent, message: None)
        options = self.options.with_audio_quality(audio_quality)

        report(0, "Probing source")
        source = probe(source_path)

        configured = resolve_ladder(resolutions or self.settings.resolution_names)
        renditions = plan(source, configured, logger=self.logger)

        output_dir = self.store.ensure_output_dir(video_id)
        jobs = [EncodeJob(r, source_path, str(output_dir)) for r in renditions]

        report(5, f"Encoding {len(jobs)} rendition(s)")
        def encode_progress(percent: int, message: str) -> None:
            report(5 + percent * 70 // 100, message)

        if self.engine_factory is not None:
            engine = self.engine_factory(source, encode_progress)
        else:
            engine = FFmpegEngine(options, source.duration_seconds, encode_progress)
        orchestrator = EncodeOrchestrator(
            engine, max_workers=self.settings.encode_workers, logger=self.logger
        )
        batch = orchestrator.run(jobs)
        batch.raise_for_failures()

        manifest = self.assembler.build(batch.successes, video_id, base_path)
        integrator = TrackIntegrator(
            self.assembler,
            write_sub_manifest=lambda uri, text: self.store.write_manifest(video_id, uri, text),
            logger=self.logger,
        )

        audio_tracks: List[MediaTrack] = []
        if include_audio:
            report(80, "Segmenting audio tracks")
            audio_tracks = self._audio_tracks(video_id, source_path, str(output_dir), options)
            if audio_tracks:
                manifest = integrator.integrate_audio(manifest, audio_tracks)

        subtitle_tracks: List[MediaTrack] = []
        if include_subtitles:
            report(90, "Extracting subtitles")
            subtitle_tracks = self._subtitle_tracks(video_id, source_path, str(output_dir))
            if subtitle_tracks:
                manifest = integrator.integrate_subtitles(manifest, subtitle_tracks)

        master_path = self.publish(video_id, manifest)
        report(100, "Conversion complete")

        return ConversionResult(
            video_id=video_id,
            master_path=master_path,
            renditions=[s.rendition for s in batch.successes],
            audio_tracks=audio_tracks,
            subtitle_tracks=subtitle_tracks,
        )

    def publish(self, video_id: str, manifest: MasterManifest) -> Path:
        """Write the master manifest atomically."""
        path = self.store.write_manifest(video_id, MASTER_ROLE, manifest.serialize())
        self.logger.info(f"[{video_id}] Published master manifest {path}")
        return path

    # Track extraction is best effort: a source whose audio or subtitle
    # streams cannot be processed still publishes its video renditions.

    def _audio_tracks(
        self, video_id: str, source_path: str, output_dir: str, options: EncodeOptions
    ) -> List[MediaTrack]:
        try:
            tracks = list_audio_streams(source_path)
            if not tracks:
                return []
            return generate_audio_hls(source_path, output_dir, tracks, options)
        except (HlsForgeError, FFmpegError, FFmpegTimeout) as e:
            self.logger.warning(f"[{video_id}] Audio tracks skipped: {e}")
            return []

    def _subtitle_tracks(self, video_id: str, source_path: str, output_dir: str) -> List[MediaTrack]:
        try:
            tracks = list_subtitle_streams(source_path)
            if not tracks:
                return []
            return extract_subtitles(source_path, output_dir, tracks, self.options)
        except (HlsForgeError, FFmpegError, FFmpegTimeout) as e:
            self.logger.warning(f"[{video_id}] Subtitle tracks skipped: {e}")
            return []
