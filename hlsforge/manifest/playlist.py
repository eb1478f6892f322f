"""
Playlist Model

Structured representation of a multivariant (master) playlist:
- ManifestLine union: Header, VersionTag, MediaDeclaration, VariantDeclaration, OtherTag
- MasterManifest with set semantics on variant uri and media (group_id, uri)
- Parsing from and serialization to playlist text
- Validation of stored playlist text
- The fixed-shape VOD sub-manifest used for single-resource tracks
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from ..errors import ManifestMalformed
from .attributes import Attribute, format_attribute_list, get_attribute, parse_attribute_list, split_tag

HEADER = "#EXTM3U"
VERSION_TAG = "#EXT-X-VERSION"
MEDIA_TAG = "#EXT-X-MEDIA"
STREAM_INF_TAG = "#EXT-X-STREAM-INF"

DEFAULT_VERSION = 3

MEDIA_TYPES = ("AUDIO", "SUBTITLES", "VIDEO", "CLOSED-CAPTIONS")

_FRAME_SIZE = re.compile(r"^\d+x\d+$")

# Tags recognised when validating stored playlists
KNOWN_TAGS = (
    "#EXTM3U",
    "#EXT-X-VERSION",
    "#EXT-X-TARGETDURATION",
    "#EXT-X-MEDIA-SEQUENCE",
    "#EXT-X-PLAYLIST-TYPE",
    "#EXT-X-STREAM-INF",
    "#EXT-X-MEDIA",
    "#EXT-X-ENDLIST",
)


# =============================================================================
# Manifest Lines
# =============================================================================


@dataclass(frozen=True)
class Header:
    def render(self) -> str:
        return HEADER


@dataclass(frozen=True)
class VersionTag:
    version: int = DEFAULT_VERSION

    def render(self) -> str:
        return f"{VERSION_TAG}:{self.version}"


@dataclass(frozen=True)
class OtherTag:
    """Any tag this model does not interpret, kept verbatim."""

    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class MediaDeclaration:
    """An #EXT-X-MEDIA rendition group member."""

    type: str
    group_id: str
    name: str
    language: Optional[str] = None
    is_default: Optional[bool] = None
    autoselect: Optional[bool] = None
    uri: Optional[str] = None
    characteristics: Optional[str] = None
    channels: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {self.type!r}")
        if not self.group_id:
            raise ValueError("Media declaration requires a GROUP-ID")
        if not self.name:
            raise ValueError("Media declaration requires a NAME")

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (self.group_id, self.uri)

    def render(self) -> str:
        attrs = [
            Attribute("TYPE", self.type),
            Attribute("GROUP-ID", self.group_id, quoted=True),
            Attribute("NAME", self.name, quoted=True),
        ]
        if self.language:
            attrs.append(Attribute("LANGUAGE", self.language, quoted=True))
        if self.is_default is not None:
            attrs.append(Attribute("DEFAULT", "YES" if self.is_default else "NO"))
        if self.autoselect is not None:
            attrs.append(Attribute("AUTOSELECT", "YES" if self.autoselect else "NO"))
        if self.uri:
            attrs.append(Attribute("URI", self.uri, quoted=True))
        if self.characteristics:
            attrs.append(Attribute("CHARACTERISTICS", self.characteristics, quoted=True))
        if self.channels:
            attrs.append(Attribute("CHANNELS", self.channels, quoted=True))
        return f"{MEDIA_TAG}:{format_attribute_list(attrs)}"


@dataclass(frozen=True)
class VariantDeclaration:
    """An #EXT-X-STREAM-INF entry together with the URI on the next line."""

    bandwidth: int
    uri: str
    frame_size: Optional[str] = None
    codecs: Optional[str] = None
    frame_rate: Optional[str] = None
    audio_group_ref: Optional[str] = None
    subtitles_group_ref: Optional[str] = None

    def __post_init__(self) -> None:
        if self.bandwidth <= 0:
            raise ValueError(f"BANDWIDTH must be positive, got {self.bandwidth}")
        if not self.uri:
            raise ValueError("Variant declaration requires a URI")
        if self.frame_size and not _FRAME_SIZE.match(self.frame_size):
            raise ValueError(f"RESOLUTION must be WIDTHxHEIGHT, got {self.frame_size!r}")

    def render(self) -> str:
        attrs = [Attribute("BANDWIDTH", str(self.bandwidth))]
        if self.frame_size:
            attrs.append(Attribute("RESOLUTION", self.frame_size))
        if self.codecs:
            attrs.append(Attribute("CODECS", self.codecs, quoted=True))
        if self.frame_rate:
            attrs.append(Attribute("FRAME-RATE", self.frame_rate))
        if self.audio_group_ref:
            attrs.append(Attribute("AUDIO", self.audio_group_ref, quoted=True))
        if self.subtitles_group_ref:
            attrs.append(Attribute("SUBTITLES", self.subtitles_group_ref, quoted=True))
        return f"{STREAM_INF_TAG}:{format_attribute_list(attrs)}\n{self.uri}"


ManifestLine = Union[Header, VersionTag, OtherTag, MediaDeclaration, VariantDeclaration]


# =============================================================================
# Master Manifest
# =============================================================================


@dataclass
class MasterManifest:
    """
    Ordered sequence of manifest lines.

    Mutations go through add_variant / insert_media which enforce at most
    one variant per uri and one media declaration per (group_id, uri).
    """

    lines: List[ManifestLine] = field(default_factory=list)

    @classmethod
    def empty(cls, version: int = DEFAULT_VERSION) -> "MasterManifest":
        return cls(lines=[Header(), VersionTag(version)])

    def copy(self) -> "MasterManifest":
        return MasterManifest(lines=copy.copy(self.lines))

    # -- queries --------------------------------------------------------------

    @property
    def variants(self) -> List[VariantDeclaration]:
        return [line for line in self.lines if isinstance(line, VariantDeclaration)]

    @property
    def media(self) -> List[MediaDeclaration]:
        return [line for line in self.lines if isinstance(line, MediaDeclaration)]

    @property
    def version(self) -> Optional[int]:
        for line in self.lines:
            if isinstance(line, VersionTag):
                return line.version
        return None

    def has_variant(self, uri: str) -> bool:
        return any(v.uri == uri for v in self.variants)

    def has_media(self, group_id: str, uri: Optional[str]) -> bool:
        return any(m.key == (group_id, uri) for m in self.media)

    def media_groups(self, media_type: str) -> List[str]:
        return [m.group_id for m in self.media if m.type == media_type]

    # -- mutation -------------------------------------------------------------

    def add_variant(self, variant: VariantDeclaration) -> bool:
        """Append a variant unless its uri is already declared."""
        if self.has_variant(variant.uri):
            return False
        self.lines.append(variant)
        return True

    def insert_media(self, index: int, decl: MediaDeclaration) -> bool:
        """Insert a media declaration unless (group_id, uri) is present."""
        if self.has_media(decl.group_id, decl.uri):
            return False
        self.lines.insert(index, decl)
        return True

    def version_index(self) -> int:
        """Index of the VersionTag line (or Header if no version)."""
        for i, line in enumerate(self.lines):
            if isinstance(line, VersionTag):
                return i
        for i, line in enumerate(self.lines):
            if isinstance(line, Header):
                return i
        raise ManifestMalformed("Manifest has no header")

    def replace_line(self, old: ManifestLine, new: ManifestLine) -> None:
        for i, line in enumerate(self.lines):
            if line is old:
                self.lines[i] = new
                return
        raise ValueError("Line is not part of this manifest")

    # -- text -----------------------------------------------------------------

    def serialize(self) -> str:
        return serialize_master(self)

    def __str__(self) -> str:
        return self.serialize()


def serialize_master(manifest: MasterManifest) -> str:
    """
    Render a master manifest to playlist text.

    Header and version come first, then the remaining tags and media
    declarations in sequence order, a blank line, and the variants
    stable-sorted by ascending bandwidth. The text ends with a newline.
    """
    head: List[str] = []
    body: List[str] = []
    variants: List[VariantDeclaration] = []

    for line in manifest.lines:
        if isinstance(line, VariantDeclaration):
            variants.append(line)
        elif isinstance(line, (Header, VersionTag)):
            head.append(line.render())
        else:
            body.append(line.render())

    out = head + body
    if variants:
        if body:
            out.append("")
        out.extend(v.render() for v in sorted(variants, key=lambda v: v.bandwidth))
    return "\n".join(out) + "\n"


# =============================================================================
# Parsing
# =============================================================================


def _iter_content_lines(text: str) -> Iterator[str]:
    for raw in text.replace("\r\n", "\n").split("\n"):
        line = raw.strip()
        if line:
            yield line


def _yes(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.upper() == "YES"


def parse_media(attr_text: str) -> MediaDeclaration:
    attrs = parse_attribute_list(attr_text)
    try:
        return MediaDeclaration(
            type=get_attribute(attrs, "TYPE") or "",
            group_id=get_attribute(attrs, "GROUP-ID") or "",
            name=get_attribute(attrs, "NAME") or "",
            language=get_attribute(attrs, "LANGUAGE"),
            is_default=_yes(get_attribute(attrs, "DEFAULT")),
            autoselect=_yes(get_attribute(attrs, "AUTOSELECT")),
            uri=get_attribute(attrs, "URI"),
            characteristics=get_attribute(attrs, "CHARACTERISTICS"),
            channels=get_attribute(attrs, "CHANNELS"),
        )
    except ValueError as e:
        raise ManifestMalformed(str(e))


def parse_variant(attr_text: str, uri: str) -> VariantDeclaration:
    attrs = parse_attribute_list(attr_text)
    bandwidth = get_attribute(attrs, "BANDWIDTH")
    try:
        bandwidth_value = int(bandwidth or "")
    except ValueError:
        raise ManifestMalformed(f"Invalid BANDWIDTH: {bandwidth!r}")
    try:
        return VariantDeclaration(
            bandwidth=bandwidth_value,
            uri=uri,
            frame_size=get_attribute(attrs, "RESOLUTION"),
            codecs=get_attribute(attrs, "CODECS"),
            frame_rate=get_attribute(attrs, "FRAME-RATE"),
            audio_group_ref=get_attribute(attrs, "AUDIO"),
            subtitles_group_ref=get_attribute(attrs, "SUBTITLES"),
        )
    except ValueError as e:
        raise ManifestMalformed(str(e))


def parse_master(text: str) -> MasterManifest:
    """
    Parse master playlist text into a MasterManifest.

    Repeated variants (same uri) and media declarations (same group_id
    and uri) collapse to their first occurrence.

    Raises:
        ManifestMalformed: If the header is missing, a variant has no URI,
            or a declaration carries invalid attributes
    """
    lines = list(_iter_content_lines(text))
    if not lines or not lines[0].startswith(HEADER):
        raise ManifestMalformed("Playlist must start with #EXTM3U")

    manifest = MasterManifest(lines=[Header()])
    i = 1
    while i < len(lines):
        line = lines[i]
        tag, attr_text = split_tag(line)

        if tag == VERSION_TAG:
            try:
                manifest.lines.append(VersionTag(int(attr_text)))
            except ValueError:
                raise ManifestMalformed(f"Invalid version tag: {line!r}")
        elif tag == MEDIA_TAG:
            manifest.insert_media(len(manifest.lines), parse_media(attr_text))
        elif tag == STREAM_INF_TAG:
            if i + 1 >= len(lines) or lines[i + 1].startswith("#"):
                raise ManifestMalformed(f"Stream declaration without URI: {line!r}")
            manifest.add_variant(parse_variant(attr_text, lines[i + 1]))
            i += 1
        elif line.startswith("#"):
            manifest.lines.append(OtherTag(line))
        else:
            raise ManifestMalformed(f"Unexpected URI line in master playlist: {line!r}")
        i += 1

    return manifest


# =============================================================================
# Validation
# =============================================================================


def validate_manifest(text: str) -> List[str]:
    """
    Check stored playlist text before serving it.

    Args:
        text: Playlist text (master, variant or track)

    Returns:
        List of error messages, empty when the playlist is acceptable
    """
    errors: List[str] = []
    lines = list(_iter_content_lines(text))

    if not lines or not lines[0].startswith(HEADER):
        errors.append("Playlist must start with #EXTM3U")

    if not any(line.startswith("#") and split_tag(line)[0] in KNOWN_TAGS for line in lines):
        errors.append("No valid HLS tags found")

    for i, line in enumerate(lines):
        if line.startswith(STREAM_INF_TAG):
            if i + 1 >= len(lines) or lines[i + 1].startswith("#"):
                errors.append(f"Stream declaration on line {i + 1} is not followed by a URI")

    return errors


# =============================================================================
# Track Sub-Manifest
# =============================================================================


def render_track_playlist(resource: str, duration: Optional[float] = None) -> str:
    """
    Build the fixed-shape VOD playlist for a single-resource track.

    Args:
        resource: Filename of the caption or audio resource
        duration: Resource duration in seconds (defaults to 10)

    Returns:
        Playlist text

    Example:
        >>> print(render_track_playlist("es.vtt"))
        #EXTM3U
        #EXT-X-VERSION:3
        #EXT-X-PLAYLIST-TYPE:VOD
        #EXT-X-TARGETDURATION:10
        #EXT-X-MEDIA-SEQUENCE:0
        #EXTINF:10.000,
        es.vtt
        #EXT-X-ENDLIST
    """
    seconds = duration if duration and duration > 0 else 10
    # Target duration is an integer ceiling of the longest segment
    target = int(seconds) if float(seconds).is_integer() else int(seconds) + 1
    return "\n".join([
        HEADER,
        f"{VERSION_TAG}:{DEFAULT_VERSION}",
        "#EXT-X-PLAYLIST-TYPE:VOD",
        f"#EXT-X-TARGETDURATION:{target}",
        "#EXT-X-MEDIA-SEQUENCE:0",
        f"#EXTINF:{seconds:.3f},",
        resource,
        "#EXT-X-ENDLIST",
    ])
