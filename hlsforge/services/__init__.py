"""
Conversion and serving services.
"""

from .converter import ConversionResult, HlsConverter
from .orchestrator import BatchResult, EncodeOrchestrator, TranscodingEngine
from .planner import plan, recommended_qualities, resolve_ladder
from .streaming import StreamingService, cache_control_for, content_type_for
from .tracks import TrackEditor, TrackEditResult, TrackIntegrator

__all__ = [
    # Planning
    "plan",
    "recommended_qualities",
    "resolve_ladder",
    # Encoding
    "BatchResult",
    "EncodeOrchestrator",
    "TranscodingEngine",
    # Tracks
    "TrackEditResult",
    "TrackEditor",
    "TrackIntegrator",
    # Pipeline
    "ConversionResult",
    "HlsConverter",
    # Serving
    "StreamingService",
    "cache_control_for",
    "content_type_for",
]
