"""
Domain types and pydantic schemas for hlsforge.
"""

from .media import (
    EncodeFailure,
    EncodeJob,
    EncodeOutcome,
    EncodeSuccess,
    MediaTrack,
    Rendition,
    SourceMetadata,
)
from .video import (
    JobProgress,
    JobStatusResponse,
    ProcessRequest,
    ProcessResponse,
    RecommendedQualitiesResponse,
    TrackAddedResponse,
    VideoInfo,
    VideoListItem,
    VideoListResponse,
)

__all__ = [
    # Media
    "EncodeFailure",
    "EncodeJob",
    "EncodeOutcome",
    "EncodeSuccess",
    "MediaTrack",
    "Rendition",
    "SourceMetadata",
    # API
    "JobProgress",
    "JobStatusResponse",
    "ProcessRequest",
    "ProcessResponse",
    "RecommendedQualitiesResponse",
    "TrackAddedResponse",
    "VideoInfo",
    "VideoListItem",
    "VideoListResponse",
]
