"""
Track URI Normalizer

Canonical relative URIs for audio and subtitle sub-manifests:
- Collapses duplicate slashes and repeated directory prefixes
- Enforces the track directory prefix ("audio/" or "subtitles/")
- Generates URIs from a track id or language
- Fills in missing track URIs

Normalization is idempotent: normalize(normalize(u)) == normalize(u).
"""

import re
from dataclasses import replace
from typing import List

from ..schemas.media import MediaTrack

AUDIO_PREFIX = "audio/"
SUBTITLES_PREFIX = "subtitles/"
PLAYLIST_EXTENSION = ".m3u8"

_ABSOLUTE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def is_absolute(uri: str) -> bool:
    """True for scheme URLs and root-relative paths."""
    return bool(_ABSOLUTE.match(uri)) or uri.startswith("/")


def _prefix_dir(prefix: str) -> str:
    return prefix.strip("/")


def normalize_track_uri(uri: str, prefix: str = AUDIO_PREFIX) -> str:
    """
    Canonicalize a relative track URI.

    Args:
        uri: Track URI as found in a manifest or track record
        prefix: Directory the URI must live under

    Returns:
        Normalized URI, or "" for an empty input. Absolute URIs are
        returned unchanged.

    Example:
        >>> normalize_track_uri("audio/audio/track.m3u8")
        'audio/track.m3u8'
        >>> normalize_track_uri("track.m3u8")
        'audio/track.m3u8'
        >>> normalize_track_uri("audio//track.m3u8")
        'audio/track.m3u8'
    """
    if not uri:
        return ""
    if is_absolute(uri):
        return uri

    directory = _prefix_dir(prefix)
    parts = [p for p in uri.split("/") if p and p != "."]
    while parts and parts[0] == directory:
        parts.pop(0)
    if not parts:
        return ""
    return f"{directory}/" + "/".join(parts)


def validate_track_uri(uri: str, prefix: str = AUDIO_PREFIX) -> bool:
    """
    Check a track URI is already canonical.

    Example:
        >>> validate_track_uri("audio/track.m3u8")
        True
        >>> validate_track_uri("track.m3u8")
        False
        >>> validate_track_uri("audio/track")
        False
    """
    if not uri:
        return False
    return (
        uri.startswith(prefix)
        and uri.endswith(PLAYLIST_EXTENSION)
        and normalize_track_uri(uri, prefix) == uri
    )


def generate_track_uri(track_id: str, prefix: str = AUDIO_PREFIX) -> str:
    """
    Build the sub-manifest URI for a track id or language code.

    Example:
        >>> generate_track_uri("es")
        'audio/es.m3u8'
        >>> generate_track_uri("audio/es")
        'audio/es.m3u8'
        >>> generate_track_uri("")
        ''
    """
    if not track_id:
        return ""
    directory = _prefix_dir(prefix)
    clean = track_id.strip("/")
    while clean.startswith(f"{directory}/"):
        clean = clean[len(directory) + 1:]
    if clean.endswith(PLAYLIST_EXTENSION):
        clean = clean[: -len(PLAYLIST_EXTENSION)]
    if not clean:
        return ""
    return normalize_track_uri(f"{clean}{PLAYLIST_EXTENSION}", prefix)


def fix_track_uris(tracks: List[MediaTrack], prefix: str = AUDIO_PREFIX) -> List[MediaTrack]:
    """
    Return copies of `tracks` with canonical sub-manifest URIs.

    Tracks without a URI get one generated from their id.
    """
    fixed = []
    for track in tracks:
        if track.sub_manifest_uri:
            uri = normalize_track_uri(track.sub_manifest_uri, prefix)
        else:
            uri = generate_track_uri(track.id, prefix)
        fixed.append(replace(track, sub_manifest_uri=uri))
    return fixed
