"""
Unit tests for the manifest assembler.

Tests:
- Master manifest built from successes, ordered by bandwidth
- Base URI template expansion
- Media declarations attached after the version tag
- Group references set on variants
- Referential integrity checks
"""

import pytest

from hlsforge.errors import ReferentialIntegrityViolation
from hlsforge.manifest.assembler import (
    DEFAULT_CODECS,
    ManifestAssembler,
    check_referential_integrity,
    expand_base_uri,
    normalize_base_path,
)
from hlsforge.manifest.playlist import (
    MasterManifest,
    MediaDeclaration,
    VariantDeclaration,
    VersionTag,
)
from hlsforge.manifest.rewriter import optimize_manifest
from hlsforge.schemas.media import EncodeSuccess, Rendition

TEMPLATE = "http://build-host/output/{basePath}{videoId}/"


@pytest.fixture
def assembler() -> ManifestAssembler:
    return ManifestAssembler(TEMPLATE)


@pytest.fixture
def successes():
    # Completion order: 720p finished first
    return [
        EncodeSuccess(Rendition("720p", "1280x720", "1500k", True), 1500000, "720p/playlist.m3u8"),
        EncodeSuccess(Rendition("360p", "640x360", "800k"), 800000, "360p/playlist.m3u8"),
    ]


def audio_decl(language: str = "en", name: str = "English") -> MediaDeclaration:
    return MediaDeclaration("AUDIO", "audio", name, language, True, uri=f"audio/{language}.m3u8")


class TestBaseUri:
    """Tests for base path handling."""

    @pytest.mark.parametrize(
        "base_path,expected",
        [(None, ""), ("", ""), ("lib", "lib/"), ("lib/", "lib/"), ("a/b", "a/b/")],
    )
    def test_normalize_base_path(self, base_path, expected):
        assert normalize_base_path(base_path) == expected

    def test_expand_with_base_path(self):
        assert expand_base_uri(TEMPLATE, "intro", "shows/s1") == "http://build-host/output/shows/s1/intro/"

    def test_expand_without_base_path(self):
        assert expand_base_uri(TEMPLATE, "intro") == "http://build-host/output/intro/"


class TestBuild:
    """Tests for ManifestAssembler.build()."""

    def test_two_renditions(self, assembler, successes):
        manifest = assembler.build(successes, "intro")

        assert manifest.serialize() == (
            "#EXTM3U\n"
            "#EXT-X-VERSION:3\n"
            f'#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,CODECS="{DEFAULT_CODECS}"\n'
            "http://build-host/output/intro/360p/playlist.m3u8\n"
            f'#EXT-X-STREAM-INF:BANDWIDTH=1500000,RESOLUTION=1280x720,CODECS="{DEFAULT_CODECS}"\n'
            "http://build-host/output/intro/720p/playlist.m3u8\n"
        )

    def test_order_independent_of_completion(self, assembler, successes):
        forward = assembler.build(successes, "intro").serialize()
        backward = assembler.build(list(reversed(successes)), "intro").serialize()

        assert forward == backward

    def test_base_path_in_variant_uri(self, assembler, successes):
        manifest = assembler.build(successes, "intro", base_path="shows")

        assert manifest.variants[0].uri == "http://build-host/output/shows/intro/360p/playlist.m3u8"

    def test_duplicate_paths_collapse(self, assembler):
        dup = [
            EncodeSuccess(Rendition("360p", "640x360", "800k"), 800000, "360p/playlist.m3u8"),
            EncodeSuccess(Rendition("360p", "640x360", "800k"), 800000, "360p/playlist.m3u8"),
        ]

        assert len(assembler.build(dup, "intro").variants) == 1

    def test_custom_codecs(self, successes):
        manifest = ManifestAssembler(TEMPLATE, codecs="avc1.4d401f,mp4a.40.2").build(successes, "intro")

        assert all(v.codecs == "avc1.4d401f,mp4a.40.2" for v in manifest.variants)

    def test_no_successes(self, assembler):
        manifest = assembler.build([], "intro")

        assert manifest.serialize() == "#EXTM3U\n#EXT-X-VERSION:3\n"


class TestAttachMedia:
    """Tests for ManifestAssembler.attach_media()."""

    def test_inserted_after_version_in_order(self, assembler, successes):
        manifest = assembler.build(successes, "intro")

        result = assembler.attach_media(manifest, [audio_decl("en", "English"), audio_decl("es", "Spanish")])

        assert isinstance(result.lines[1], VersionTag)
        assert [line.language for line in result.lines[2:4]] == ["en", "es"]

    def test_variants_reference_group(self, assembler, successes):
        manifest = assembler.build(successes, "intro")

        result = assembler.attach_media(manifest, [audio_decl()])

        assert [v.audio_group_ref for v in result.variants] == ["audio", "audio"]
        assert all(v.subtitles_group_ref is None for v in result.variants)
        assert '#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,CODECS="avc1.42E01E,mp4a.40.2",AUDIO="audio"' in (
            result.serialize()
        )

    def test_subtitles_group(self, assembler, successes):
        decl = MediaDeclaration("SUBTITLES", "subs", "Spanish", "es", uri="subtitles/es.m3u8")

        result = assembler.attach_media(assembler.build(successes, "intro"), [decl])

        assert [v.subtitles_group_ref for v in result.variants] == ["subs", "subs"]
        assert all(v.audio_group_ref is None for v in result.variants)

    def test_existing_group_ref_kept(self, assembler):
        manifest = MasterManifest.empty()
        manifest.add_variant(VariantDeclaration(800000, "360p/playlist.m3u8", audio_group_ref="aac"))
        manifest.insert_media(2, MediaDeclaration("AUDIO", "aac", "Main", uri="audio/main.m3u8"))

        result = assembler.attach_media(manifest, [audio_decl()])

        assert result.variants[0].audio_group_ref == "aac"

    def test_input_not_mutated(self, assembler, successes):
        manifest = assembler.build(successes, "intro")
        before = manifest.serialize()

        assembler.attach_media(manifest, [audio_decl()])

        assert manifest.serialize() == before

    def test_attach_twice_is_idempotent(self, assembler, successes):
        manifest = assembler.build(successes, "intro")

        once = assembler.attach_media(manifest, [audio_decl()])
        twice = assembler.attach_media(once, [audio_decl()])

        assert twice.serialize() == once.serialize()
        assert optimize_manifest(twice.serialize()) == optimize_manifest(once.serialize())
        assert len(twice.media) == 1

    def test_same_uri_in_another_group_is_added(self, assembler, successes):
        manifest = assembler.attach_media(assembler.build(successes, "intro"), [audio_decl()])
        alt = MediaDeclaration("AUDIO", "audio-alt", "English", "en", uri="audio/en.m3u8")

        result = assembler.attach_media(manifest, [alt])

        assert len(result.media) == 2


class TestReferentialIntegrity:
    """Tests for check_referential_integrity()."""

    def test_dangling_audio_ref(self):
        manifest = MasterManifest.empty()
        manifest.add_variant(VariantDeclaration(800000, "360p/playlist.m3u8", audio_group_ref="audio"))

        with pytest.raises(ReferentialIntegrityViolation) as exc_info:
            check_referential_integrity(manifest)

        assert exc_info.value.group_id == "audio"
        assert exc_info.value.role == "AUDIO"
        assert "360p/playlist.m3u8" in str(exc_info.value)

    def test_dangling_subtitles_ref(self):
        manifest = MasterManifest.empty()
        manifest.add_variant(VariantDeclaration(800000, "a.m3u8", subtitles_group_ref="subs"))
        # Right group id but the wrong media type
        manifest.insert_media(2, MediaDeclaration("AUDIO", "subs", "x", uri="audio/x.m3u8"))

        with pytest.raises(ReferentialIntegrityViolation):
            check_referential_integrity(manifest)

    def test_attach_rejects_dangling_result(self, assembler):
        manifest = MasterManifest.empty()
        manifest.add_variant(
            VariantDeclaration(800000, "a.m3u8", audio_group_ref="audio", subtitles_group_ref="cc")
        )

        with pytest.raises(ReferentialIntegrityViolation):
            assembler.attach_media(manifest, [audio_decl()])

    def test_consistent_manifest(self, assembler, successes):
        check_referential_integrity(assembler.attach_media(assembler.build(successes, "intro"), [audio_decl()]))
