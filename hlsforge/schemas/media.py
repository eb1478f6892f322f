"""
Media Domain Types

Value types that flow through the conversion pipeline:
- SourceMetadata produced by probing a source file
- Rendition planned for encoding (equality by frame size)
- EncodeJob submitted to the orchestrator
- EncodeSuccess / EncodeFailure outcomes of one job
- MediaTrack describing an audio or subtitle track
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

_NUMERIC_PREFIX = re.compile(r"^(\d+)")
_FRAME_SIZE = re.compile(r"^(\d+)x(\d+)$")


def parse_frame_size(frame_size: str) -> Tuple[int, int]:
    """
    Split a "WxH" frame size into integers.

    Raises:
        ValueError: If the value is not of the form WIDTHxHEIGHT
    """
    match = _FRAME_SIZE.match(frame_size or "")
    if not match:
        raise ValueError(f"Invalid frame size: {frame_size!r}. Expected WIDTHxHEIGHT")
    return int(match.group(1)), int(match.group(2))


def name_height(name: str) -> int:
    """
    Numeric prefix of a rendition name ("720p" -> 720).

    Names without a numeric prefix sort first (0).
    """
    match = _NUMERIC_PREFIX.match(name or "")
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class SourceMetadata:
    """Probe result for a source video. Immutable after creation."""

    width: int
    height: int
    bitrate: str
    duration_seconds: Optional[float] = None
    codec: Optional[str] = None

    @property
    def frame_size(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, eq=False)
class Rendition:
    """
    One quality level of the output ladder.

    Two renditions are equal when they share a frame size, regardless of
    name, bitrate or origin flag.
    """

    name: str
    frame_size: str
    target_bitrate: str
    is_original: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Rendition):
            return NotImplemented
        return self.frame_size == other.frame_size

    def __hash__(self) -> int:
        return hash(self.frame_size)

    @property
    def height(self) -> int:
        """Height taken from the name prefix, as used for copy decisions."""
        return name_height(self.name)


@dataclass(frozen=True)
class EncodeJob:
    """A unit of work for the transcoding engine."""

    rendition: Rendition
    source_path: str
    output_dir: str


@dataclass(frozen=True)
class EncodeSuccess:
    """A rendition that was encoded and segmented successfully."""

    rendition: Rendition
    bandwidth_bps: int
    variant_manifest_relative_path: str

    ok = True


@dataclass(frozen=True)
class EncodeFailure:
    """A rendition whose encode job failed, with the captured cause."""

    rendition: Rendition
    cause: BaseException = field(compare=False)

    ok = False


EncodeOutcome = Union[EncodeSuccess, EncodeFailure]


@dataclass
class MediaTrack:
    """
    Audio or subtitle track metadata.

    `resource` is the media file a generated sub-manifest points at
    (a caption file or an already segmented audio file), relative to
    the track directory.
    """

    id: str
    language: str
    label: str
    is_default: bool = False
    sub_manifest_uri: Optional[str] = None
    resource: Optional[str] = None
    duration_seconds: Optional[float] = None
    codec: Optional[str] = None
    format: Optional[str] = None
    bitrate: Optional[str] = None
    channels: Optional[int] = None
