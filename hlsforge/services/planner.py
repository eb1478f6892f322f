"""
Rendition Planner

Computes the ordered set of renditions to encode for a source:
- Keeps every configured rendition
- Adds the source's native resolution unless a configured rendition
  already has that frame size (which is then flagged as the original)
- Orders by the numeric prefix of the rendition name
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from ..core.config import COMMON_RESOLUTIONS
from ..errors import InvalidSource
from ..schemas.media import Rendition, SourceMetadata, name_height

# Always offered when the source is tall enough
STANDARD_QUALITIES = ("360p", "480p", "720p")


def plan(
    source: SourceMetadata,
    configured: Iterable[Rendition],
    logger: Optional[logging.Logger] = None,
) -> List[Rendition]:
    """
    Plan the renditions to encode.

    Args:
        source: Probed source metadata
        configured: Renditions requested by the caller (not filtered)
        logger: Optional logger, defaults to the module logger

    Returns:
        Renditions deduplicated by frame size, sorted ascending by name height

    Raises:
        InvalidSource: If the source width or height is missing or not positive

    Example:
        >>> source = SourceMetadata(width=854, height=480, bitrate="1100k")
        >>> [r.name for r in plan(source, [Rendition("480p", "854x480", "1200k")])]
        ['480p']
    """
    log = logger or logging.getLogger(__name__)

    if not source.width or not source.height or source.width <= 0 or source.height <= 0:
        raise InvalidSource(
            f"Could not determine source dimensions ({source.width}x{source.height})"
        )

    planned: List[Rendition] = []
    for rendition in configured:
        if rendition in planned:
            log.debug(f"Skipping duplicate rendition {rendition.name} ({rendition.frame_size})")
            continue
        planned.append(rendition)

    native_size = source.frame_size
    for i, rendition in enumerate(planned):
        if rendition.frame_size == native_size:
            planned[i] = replace(rendition, is_original=True)
            break
    else:
        planned.append(
            Rendition(
                name=f"{source.height}p",
                frame_size=native_size,
                target_bitrate=source.bitrate,
                is_original=True,
            )
        )

    planned.sort(key=lambda r: name_height(r.name))
    log.info(f"Planned renditions: {[r.name for r in planned]}")
    return planned


def resolve_ladder(names: Iterable[str]) -> List[Rendition]:
    """
    Turn ladder names ("720p") into renditions from COMMON_RESOLUTIONS.

    Raises:
        ValueError: If a name is not part of the ladder
    """
    renditions = []
    for name in names:
        entry = COMMON_RESOLUTIONS.get(name)
        if entry is None:
            raise ValueError(
                f"Unknown resolution: {name}. Must be one of: {', '.join(COMMON_RESOLUTIONS)}"
            )
        renditions.append(Rendition(name=name, frame_size=entry["size"], target_bitrate=entry["bitrate"]))
    return renditions


def recommended_qualities(source: SourceMetadata) -> List[str]:
    """
    Ladder names worth encoding for a source.

    Every ladder entry (standard qualities included) whose height does
    not exceed the source height, in ascending order.
    """
    candidates = set(COMMON_RESOLUTIONS) | set(STANDARD_QUALITIES)
    return sorted(
        (name for name in candidates if name_height(name) <= source.height),
        key=name_height,
    )
