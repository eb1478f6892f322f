"""
Unit tests for the rendition planner.

Tests:
- Native resolution appended as the original rendition
- Configured rendition with the native frame size flagged instead
- Deduplication by frame size
- Ordering by name height
- Invalid sources rejected
- Ladder resolution and recommended qualities
"""

import pytest

from hlsforge.errors import InvalidSource
from hlsforge.schemas.media import Rendition, SourceMetadata
from hlsforge.services.planner import plan, recommended_qualities, resolve_ladder


class TestPlan:
    """Tests for plan()."""

    def test_matching_frame_size_is_marked_original(self):
        """A configured rendition with the source frame size is reused, not duplicated."""
        source = SourceMetadata(width=854, height=480, bitrate="1100k")
        configured = [Rendition("480p", "854x480", "1200k")]

        planned = plan(source, configured)

        assert len(planned) == 1
        assert planned[0].name == "480p"
        assert planned[0].is_original is True
        assert planned[0].target_bitrate == "1200k"

    def test_native_resolution_appended(self, source_720p, ladder):
        """Without a match the native size is added with the source bitrate."""
        source = SourceMetadata(width=1920, height=1080, bitrate="4200k")

        planned = plan(source, ladder)

        assert [r.name for r in planned] == ["360p", "480p", "720p", "1080p"]
        original = planned[-1]
        assert original.is_original is True
        assert original.frame_size == "1920x1080"
        assert original.target_bitrate == "4200k"
        assert not any(r.is_original for r in planned[:-1])

    def test_configured_renditions_are_not_filtered(self):
        """Renditions taller than the source are kept."""
        source = SourceMetadata(width=640, height=360, bitrate="700k")
        configured = [Rendition("1080p", "1920x1080", "2800k")]

        planned = plan(source, configured)

        assert [r.name for r in planned] == ["360p", "1080p"]

    def test_duplicate_frame_sizes_collapse(self, source_720p):
        configured = [
            Rendition("480p", "854x480", "1200k"),
            Rendition("sd", "854x480", "900k"),
        ]

        planned = plan(source_720p, configured)

        assert [r.frame_size for r in planned] == ["854x480", "1280x720"]
        assert planned[0].name == "480p"

    def test_sorted_by_numeric_prefix(self, source_720p):
        configured = [
            Rendition("1080p", "1920x1080", "2800k"),
            Rendition("240p", "426x240", "600k"),
            Rendition("480p", "854x480", "1200k"),
        ]

        planned = plan(source_720p, configured)

        assert [r.name for r in planned] == ["240p", "480p", "720p", "1080p"]

    def test_configured_list_not_mutated(self, source_720p, ladder):
        before = list(ladder)

        plan(source_720p, ladder)

        assert [r.is_original for r in ladder] == [r.is_original for r in before]

    @pytest.mark.parametrize(
        "width,height",
        [(0, 720), (1280, 0), (-1, 720), (1280, -720)],
    )
    def test_invalid_dimensions_rejected(self, width, height):
        source = SourceMetadata(width=width, height=height, bitrate="1000k")

        with pytest.raises(InvalidSource):
            plan(source, [])


class TestRenditionEquality:
    """Renditions compare by frame size only."""

    def test_equal_by_frame_size(self):
        assert Rendition("480p", "854x480", "1200k") == Rendition("sd", "854x480", "900k", True)
        assert len({Rendition("a", "854x480", "1k"), Rendition("b", "854x480", "2k")}) == 1

    def test_different_frame_size(self):
        assert Rendition("480p", "854x480", "1200k") != Rendition("480p", "852x480", "1200k")


class TestResolveLadder:
    """Tests for resolve_ladder()."""

    def test_known_names(self):
        renditions = resolve_ladder(["720p", "360p"])

        assert [(r.name, r.frame_size, r.target_bitrate) for r in renditions] == [
            ("720p", "1280x720", "1500k"),
            ("360p", "640x360", "800k"),
        ]

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown resolution: 999p"):
            resolve_ladder(["999p"])


class TestRecommendedQualities:
    """Tests for recommended_qualities()."""

    def test_filters_by_source_height(self, source_720p):
        assert recommended_qualities(source_720p) == ["240p", "360p", "480p", "720p"]

    def test_small_source(self):
        source = SourceMetadata(width=426, height=240, bitrate="400k")

        assert recommended_qualities(source) == ["240p"]

    def test_4k_source_gets_full_ladder(self):
        source = SourceMetadata(width=3840, height=2160, bitrate="20000k")

        assert recommended_qualities(source)[-1] == "2160p"
        assert len(recommended_qualities(source)) == 7
