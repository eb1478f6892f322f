"""
Integration tests for the streaming endpoints.

Tests:
- Master playlist rewritten for /stream/{video_id} and deduplicated
- Playlist headers (content type, no-cache)
- Missing and malformed playlists
- Rendition, audio and subtitle playlists
- Subtitle playlist generated from a caption file
- Segment and caption files with long-lived caching
- Path traversal prevention
"""

import pytest
from httpx import AsyncClient

MASTER = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    '#EXT-X-MEDIA:TYPE=SUBTITLES,GROUP-ID="subs",NAME="Spanish",LANGUAGE="es",URI="es.vtt"\n'
    '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="audio",NAME="English",LANGUAGE="en",DEFAULT=YES,'
    'URI="http://build-host/output/intro/audio/en.m3u8"\n'
    '#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="audio",NAME="English",LANGUAGE="en",DEFAULT=YES,'
    'URI="audio/en.m3u8"\n'
    "\n"
    '#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,AUDIO="audio",SUBTITLES="subs"\n'
    "http://build-host/output/intro/360p/playlist.m3u8\n"
    '#EXT-X-STREAM-INF:BANDWIDTH=1500000,RESOLUTION=1280x720,AUDIO="audio",SUBTITLES="subs"\n'
    "http://build-host/output/intro/720p/playlist.m3u8\n"
)

VARIANT = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    "#EXT-X-TARGETDURATION:10\n"
    "#EXT-X-MEDIA-SEQUENCE:0\n"
    "#EXT-X-PLAYLIST-TYPE:VOD\n"
    "#EXTINF:10.000000,\n"
    "segment000.ts\n"
    "#EXTINF:2.500000,\n"
    "segment001.ts\n"
    "#EXT-X-ENDLIST\n"
)


class TestMasterPlaylist:
    """Tests for GET /stream/{video_id}/master.m3u8."""

    @pytest.mark.asyncio
    async def test_rewritten_for_request(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", MASTER)

        response = await async_client.get("/stream/intro/master.m3u8")

        assert response.status_code == 200
        body = response.text
        assert 'URI="/stream/intro/subtitles/es.m3u8"' in body
        assert "/stream/intro/360p/playlist.m3u8" in body.split("\n")
        assert "/stream/intro/720p/playlist.m3u8" in body.split("\n")
        assert "build-host" not in body
        # Both English declarations resolve to the same URI; one is kept
        assert body.count('URI="/stream/intro/audio/en.m3u8"') == 1

    @pytest.mark.asyncio
    async def test_headers(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", MASTER)

        response = await async_client.get("/stream/intro/master.m3u8")

        assert response.headers["content-type"].startswith("application/vnd.apple.mpegurl")
        assert response.headers["cache-control"] == "no-cache"

    @pytest.mark.asyncio
    async def test_stored_file_unchanged(self, async_client: AsyncClient, write_output):
        path = write_output("intro", "master.m3u8", MASTER)

        await async_client.get("/stream/intro/master.m3u8")

        assert path.read_text(encoding="utf-8") == MASTER

    @pytest.mark.asyncio
    async def test_not_found(self, async_client: AsyncClient):
        response = await async_client.get("/stream/missing/master.m3u8")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_malformed(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", "<html>gateway error</html>\n")

        response = await async_client.get("/stream/intro/master.m3u8")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "manifest_malformed"


class TestRenditionPlaylists:
    """Tests for rendition, audio and subtitle playlists."""

    @pytest.mark.asyncio
    async def test_variant_segments_prefixed(self, async_client: AsyncClient, write_output):
        write_output("intro", "360p/playlist.m3u8", VARIANT)

        response = await async_client.get("/stream/intro/360p/playlist.m3u8")

        assert response.status_code == 200
        lines = response.text.split("\n")
        assert "/stream/intro/360p/segment000.ts" in lines
        assert "/stream/intro/360p/segment001.ts" in lines
        assert "#EXTINF:2.500000," in lines

    @pytest.mark.asyncio
    async def test_unknown_rendition_name(self, async_client: AsyncClient, write_output):
        write_output("intro", "extras/playlist.m3u8", VARIANT)

        response = await async_client.get("/stream/intro/extras/playlist.m3u8")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_audio_playlist(self, async_client: AsyncClient, write_output):
        write_output(
            "intro",
            "audio/en.m3u8",
            "#EXTM3U\n#EXT-X-VERSION:3\n#EXTINF:10.000000,\nen_segment000.ts\n#EXT-X-ENDLIST\n",
        )

        response = await async_client.get("/stream/intro/audio/en.m3u8")

        assert response.status_code == 200
        assert "/stream/intro/audio/en_segment000.ts" in response.text.split("\n")

    @pytest.mark.asyncio
    async def test_stored_subtitle_playlist(self, async_client: AsyncClient, write_output):
        stored = "#EXTM3U\n#EXT-X-VERSION:3\n#EXTINF:61.500,\nes.vtt\n#EXT-X-ENDLIST"
        write_output("intro", "subtitles/es.m3u8", stored)

        response = await async_client.get("/stream/intro/subtitles/es.m3u8")

        assert response.status_code == 200
        assert response.text == stored

    @pytest.mark.asyncio
    async def test_subtitle_playlist_generated_from_caption(self, async_client: AsyncClient, write_output):
        write_output("intro", "subtitles/sub_fr.vtt", "WEBVTT\n\n00:00.000 --> 00:01.000\nBonjour\n")

        response = await async_client.get("/stream/intro/subtitles/fr.m3u8")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache"
        lines = response.text.split("\n")
        assert lines[0] == "#EXTM3U"
        assert "sub_fr.vtt" in lines
        assert lines[-1] == "#EXT-X-ENDLIST"

    @pytest.mark.asyncio
    async def test_subtitle_playlist_missing(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", MASTER)

        response = await async_client.get("/stream/intro/subtitles/de.m3u8")

        assert response.status_code == 404


class TestMediaFiles:
    """Tests for segments and caption files."""

    @pytest.mark.asyncio
    async def test_segment(self, async_client: AsyncClient, write_output):
        write_output("intro", "360p/segment000.ts", "not really mpeg-ts")

        response = await async_client.get("/stream/intro/360p/segment000.ts")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp2t"
        assert response.headers["cache-control"] == "public, max-age=31536000"
        assert response.text == "not really mpeg-ts"

    @pytest.mark.asyncio
    async def test_caption_file(self, async_client: AsyncClient, write_output):
        write_output("intro", "subtitles/es.vtt", "WEBVTT\n")

        response = await async_client.get("/stream/intro/subtitles/es.vtt")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/vtt")

    @pytest.mark.asyncio
    async def test_missing_segment(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", MASTER)

        response = await async_client.get("/stream/intro/360p/segment999.ts")

        assert response.status_code == 404
        assert response.json()["detail"]["resource"] == "file"

    @pytest.mark.asyncio
    async def test_traversal_rejected(self, async_client: AsyncClient, write_output):
        write_output("intro", "master.m3u8", MASTER)

        response = await async_client.get("/stream/intro/audio/..%2F..%2Fsecret.ts")

        assert response.status_code == 404
