"""
Unit tests for track URI normalization.
"""

import pytest

from hlsforge.manifest.uri import (
    SUBTITLES_PREFIX,
    fix_track_uris,
    generate_track_uri,
    is_absolute,
    normalize_track_uri,
    validate_track_uri,
)
from hlsforge.schemas.media import MediaTrack


class TestNormalize:
    """Tests for normalize_track_uri()."""

    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("audio/audio/track.m3u8", "audio/track.m3u8"),
            ("track.m3u8", "audio/track.m3u8"),
            ("audio//track.m3u8", "audio/track.m3u8"),
            ("./audio/track.m3u8", "audio/track.m3u8"),
            ("audio/lang/en.m3u8", "audio/lang/en.m3u8"),
            ("", ""),
            ("audio/", ""),
        ],
    )
    def test_audio(self, uri, expected):
        assert normalize_track_uri(uri) == expected

    def test_subtitles_prefix(self):
        assert normalize_track_uri("subtitles/subtitles/es.m3u8", SUBTITLES_PREFIX) == "subtitles/es.m3u8"
        assert normalize_track_uri("es.m3u8", SUBTITLES_PREFIX) == "subtitles/es.m3u8"

    @pytest.mark.parametrize("uri", ["http://cdn.example.com/audio/en.m3u8", "/stream/v1/audio/en.m3u8"])
    def test_absolute_unchanged(self, uri):
        assert is_absolute(uri)
        assert normalize_track_uri(uri) == uri

    @pytest.mark.parametrize("uri", ["audio/audio//a.m3u8", "a.m3u8", "audio/./b/c.m3u8"])
    def test_idempotent(self, uri):
        once = normalize_track_uri(uri)

        assert normalize_track_uri(once) == once


class TestValidate:
    @pytest.mark.parametrize(
        "uri,valid",
        [
            ("audio/track.m3u8", True),
            ("track.m3u8", False),
            ("audio/track", False),
            ("audio//track.m3u8", False),
            ("", False),
        ],
    )
    def test_validate(self, uri, valid):
        assert validate_track_uri(uri) is valid


class TestGenerate:
    @pytest.mark.parametrize(
        "track_id,expected",
        [
            ("es", "audio/es.m3u8"),
            ("audio/es", "audio/es.m3u8"),
            ("es.m3u8", "audio/es.m3u8"),
            ("/es/", "audio/es.m3u8"),
            ("", ""),
        ],
    )
    def test_generate(self, track_id, expected):
        assert generate_track_uri(track_id) == expected

    def test_generated_uris_are_valid(self):
        assert validate_track_uri(generate_track_uri("pt-BR"))


class TestFixTrackUris:
    def test_fills_and_normalizes(self):
        tracks = [
            MediaTrack(id="audio_0", language="en", label="English", sub_manifest_uri="audio/audio/en.m3u8"),
            MediaTrack(id="audio_1", language="es", label="Spanish"),
        ]

        fixed = fix_track_uris(tracks)

        assert [t.sub_manifest_uri for t in fixed] == ["audio/en.m3u8", "audio/audio_1.m3u8"]
        assert tracks[1].sub_manifest_uri is None
