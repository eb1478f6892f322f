# Core modules: configuration, redis, queue, storage
from .config import AUDIO_PRESETS, COMMON_RESOLUTIONS, Settings, get_settings
from .queue import (
    JOB_TIMEOUTS,
    conversion_job_id,
    enqueue_conversion,
    enqueue_job,
    find_active_conversion,
    get_job_status,
    get_progress,
    update_progress,
)
from .redis import RedisHealthStatus, check_redis_health, get_redis_connection
from .storage import (
    ManifestStore,
    find_source_video,
    get_processed_dir,
    get_storage_root,
    get_videos_dir,
    list_source_videos,
    validate_video_id,
)

__all__ = [
    # Config
    "AUDIO_PRESETS",
    "COMMON_RESOLUTIONS",
    "Settings",
    "get_settings",
    # Redis
    "RedisHealthStatus",
    "check_redis_health",
    "get_redis_connection",
    # Queue
    "JOB_TIMEOUTS",
    "conversion_job_id",
    "enqueue_conversion",
    "enqueue_job",
    "find_active_conversion",
    "get_job_status",
    "get_progress",
    "update_progress",
    # Storage
    "ManifestStore",
    "find_source_video",
    "get_processed_dir",
    "get_storage_root",
    "get_videos_dir",
    "list_source_videos",
    "validate_video_id",
]
