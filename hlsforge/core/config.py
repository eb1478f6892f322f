"""
Application Configuration

Settings class using pydantic-settings for environment variable loading.
Defines storage locations, HLS packaging defaults and the rendition ladder.
"""

from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Predefined rendition ladder: name -> (frame size, target bitrate)
COMMON_RESOLUTIONS: Dict[str, Dict[str, str]] = {
    "240p": {"size": "426x240", "bitrate": "600k"},
    "360p": {"size": "640x360", "bitrate": "800k"},
    "480p": {"size": "854x480", "bitrate": "1200k"},
    "720p": {"size": "1280x720", "bitrate": "1500k"},
    "1080p": {"size": "1920x1080", "bitrate": "2800k"},
    "1440p": {"size": "2560x1440", "bitrate": "5000k"},
    "2160p": {"size": "3840x2160", "bitrate": "8000k"},
}

# Audio quality presets
AUDIO_PRESETS: Dict[str, Dict[str, str]] = {
    "low": {"bitrate": "96k", "codec": "aac"},
    "medium": {"bitrate": "128k", "codec": "aac"},
    "high": {"bitrate": "192k", "codec": "aac"},
    "lossless": {"bitrate": "320k", "codec": "aac"},
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For example, HLS_TIME can be set via the HLS_TIME env var.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="hlsforge", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="0.1.0", description="API version")
    log_level: str = Field(default="INFO", description="Root log level")

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Storage
    storage_path: str = Field(
        default="/data",
        alias="STORAGE_PATH",
        description="Root path for source videos and HLS output",
    )

    # HLS packaging
    hls_time: int = Field(default=10, description="Target segment duration in seconds")
    hls_playlist_type: str = Field(default="vod", description="'vod' or 'event'")
    copy_codecs_threshold_height: int = Field(
        default=720,
        description="Max height at which the original rendition copies source streams",
    )
    audio_codec: str = Field(default="aac", description="Audio codec for re-encodes")
    audio_bitrate: str = Field(default="128k", description="Audio bitrate for re-encodes")
    video_codec: str = Field(default="h264", description="Video codec for re-encodes")
    video_profile: str = Field(default="main", description="Video codec profile")
    crf: int = Field(default=20, description="Constant rate factor (lower = better quality)")
    gop_size: int = Field(default=48, description="Keyframe interval in frames")
    proxy_base_url_template: str = Field(
        default="http://localhost:3000/stream-resource/{basePath}{videoId}/",
        description="Base URI written into master playlists at build time",
    )
    master_playlist_name: str = Field(default="master.m3u8", description="Master playlist filename")
    segment_name_template: str = Field(default="segment%03d.ts", description="Segment filename pattern")
    resolution_playlist_name: str = Field(default="playlist.m3u8", description="Variant playlist filename")
    resolutions: str = Field(
        default="360p,480p,720p",
        description="Comma-separated ladder names to encode besides the original",
    )

    # Encoding resources
    encode_workers: int = Field(default=4, description="Max concurrent encode processes")
    encode_timeout_seconds: int = Field(default=1800, description="Timeout per encode job")

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def resolution_names(self) -> list[str]:
        """Parse configured ladder names."""
        return [name.strip() for name in self.resolutions.split(",") if name.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.

    Returns:
        Settings: Application settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.hls_time)
        10
    """
    return Settings()
