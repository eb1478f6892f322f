"""
Pydantic schemas for the video API endpoints.

JSON field names are camelCase (aliases); Python attributes are snake_case.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.config import AUDIO_PRESETS, COMMON_RESOLUTIONS


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def validate_audio_preset(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in AUDIO_PRESETS:
        raise ValueError(f"audioQuality must be one of: {', '.join(AUDIO_PRESETS)}")
    return v


# --- Request Schemas ---


class ProcessRequest(ApiModel):
    """Options for an HLS conversion. Every field is optional."""

    resolutions: Optional[List[str]] = Field(
        None,
        description="Ladder names to encode (e.g. ['480p', '720p']); defaults to the configured ladder",
    )
    base_path: Optional[str] = Field(
        None,
        alias="basePath",
        max_length=200,
        description="Path segment substituted for {basePath} in the master playlist base URI",
    )
    include_audio: bool = Field(True, alias="includeAudio", description="Declare audio streams as tracks")
    include_subtitles: bool = Field(
        True, alias="includeSubtitles", description="Extract subtitle streams to WebVTT"
    )
    audio_quality: Optional[str] = Field(
        None,
        alias="audioQuality",
        description="Audio preset (low, medium, high, lossless); defaults to the configured codec and bitrate",
    )

    @field_validator("resolutions")
    @classmethod
    def validate_resolutions(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        unknown = [name for name in v if name not in COMMON_RESOLUTIONS]
        if unknown:
            raise ValueError(
                f"Unknown resolution(s): {', '.join(unknown)}. "
                f"Must be one of: {', '.join(COMMON_RESOLUTIONS)}"
            )
        return v

    @field_validator("base_path")
    @classmethod
    def validate_base_path(cls, v: Optional[str]) -> Optional[str]:
        if v and (".." in v.split("/") or v.startswith("/") or '"' in v):
            raise ValueError("basePath must be a relative path without '..' or quotes")
        return v

    @field_validator("audio_quality")
    @classmethod
    def validate_audio_quality(cls, v: Optional[str]) -> Optional[str]:
        return validate_audio_preset(v)


# --- Response Schemas ---


class VideoListItem(ApiModel):
    """A source video in the library."""

    id: str = Field(..., description="Video id (source filename without extension)")
    filename: str = Field(..., description="Source filename")
    size: int = Field(..., description="Source size in bytes")
    created: datetime = Field(..., description="Source file creation time")
    processed: bool = Field(..., description="Whether a master playlist exists")
    stream_url: Optional[str] = Field(
        None, alias="streamUrl", description="Master playlist URL when processed"
    )


class VideoListResponse(ApiModel):
    videos: List[VideoListItem]
    total: int


class VideoInfo(ApiModel):
    """Converted output of a video."""

    id: str
    processed: bool
    qualities: List[str] = Field(default_factory=list, description="Rendition directories, ascending")
    has_audio: bool = Field(False, alias="hasAudio")
    has_subtitles: bool = Field(False, alias="hasSubtitles")
    stream_url: Optional[str] = Field(None, alias="streamUrl")


class ProcessResponse(ApiModel):
    """Response when a conversion is queued (202 Accepted)."""

    job_id: str = Field(..., alias="jobId", description="RQ job id (convert:{videoId})")
    video_id: str = Field(..., alias="videoId")
    status: Literal["queued"] = Field("queued", description="Initial job status")
    created_at: datetime = Field(..., alias="createdAt")


class JobProgress(ApiModel):
    percent: int = Field(0, ge=0, le=100)
    message: str = ""
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class JobStatusResponse(ApiModel):
    """Status of a video's conversion job."""

    job_id: str = Field(..., alias="jobId")
    status: str = Field(..., description="RQ status: queued, started, finished, failed, ...")
    progress: Optional[JobProgress] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    enqueued_at: Optional[str] = Field(None, alias="enqueuedAt")
    started_at: Optional[str] = Field(None, alias="startedAt")
    ended_at: Optional[str] = Field(None, alias="endedAt")


class RecommendedQualitiesResponse(ApiModel):
    video_id: str = Field(..., alias="videoId")
    source_resolution: str = Field(..., alias="sourceResolution", description="WIDTHxHEIGHT of the source")
    recommended: List[str]


class TrackAddedResponse(ApiModel):
    """Response when an external track file is added to a converted video."""

    video_id: str = Field(..., alias="videoId")
    type: Literal["audio", "subtitles"]
    language: str
    uri: str = Field(..., description="Sub-manifest URI declared in the master playlist")
    added: bool = Field(
        ..., description="False when the language was already declared; its media was replaced"
    )
