"""
Shared FastAPI dependencies.

Override these in tests via app.dependency_overrides.
"""

from ..core.storage import ManifestStore
from ..services.streaming import StreamingService
from ..services.tracks import TrackEditor


def get_manifest_store() -> ManifestStore:
    """Manifest store rooted at the configured processed directory."""
    return ManifestStore()


def get_streaming_service() -> StreamingService:
    return StreamingService(store=get_manifest_store())


def get_track_editor() -> TrackEditor:
    return TrackEditor(store=get_manifest_store())
