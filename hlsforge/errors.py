"""
Error Taxonomy

Exceptions raised by the manifest pipeline:
- Source probing and rendition planning
- Encode job and batch conversion failures
- Stored manifest lookup and validation
- Manifest referential integrity
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .schemas.media import EncodeFailure, EncodeSuccess, Rendition


class HlsForgeError(Exception):
    """Base class for all hlsforge errors."""

    pass


class InvalidSource(HlsForgeError):
    """Raised when probe data cannot describe a usable video source."""

    pass


class NoRenditionsPlanned(HlsForgeError):
    """Raised when an encode batch is started with no jobs."""

    def __init__(self, message: str = "No renditions were planned for encoding"):
        super().__init__(message)


class EncodeJobFailed(HlsForgeError):
    """
    Raised by the transcoding engine when a single rendition fails.

    The orchestrator never lets this propagate mid-batch; it is captured
    as the cause of a Failure outcome instead.
    """

    def __init__(self, rendition: "Rendition", cause: Optional[BaseException] = None):
        self.rendition = rendition
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Encoding {rendition.name} ({rendition.frame_size}) failed{detail}")


class BatchConversionFailed(HlsForgeError):
    """
    Raised when one or more renditions of a batch failed.

    Successful outcomes are kept on the exception for diagnostics only;
    no manifest is published from a partially failed batch.
    """

    def __init__(
        self,
        count: int,
        successes: Optional[List["EncodeSuccess"]] = None,
        failures: Optional[List["EncodeFailure"]] = None,
    ):
        self.count = count
        self.successes = list(successes or [])
        self.failures = list(failures or [])
        super().__init__(f"HLS conversion failed for {count} rendition(s)")


class ManifestNotFound(HlsForgeError):
    """Raised when no stored manifest exists for a video and role."""

    def __init__(self, video_id: str, role: str = "master"):
        self.video_id = video_id
        self.role = role
        super().__init__(f"Manifest '{role}' not found for video '{video_id}'")


class ManifestMalformed(HlsForgeError):
    """Raised when a stored manifest is not a valid playlist."""

    def __init__(self, message: str = "Malformed manifest", errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)


class ReferentialIntegrityViolation(HlsForgeError):
    """Raised when a variant references a group-id with no media declaration."""

    def __init__(self, group_id: str, role: str, uri: Optional[str] = None):
        self.group_id = group_id
        self.role = role
        self.uri = uri
        subject = f"Variant {uri}" if uri else "Variant"
        super().__init__(
            f"{subject} references {role} group '{group_id}' with no matching media declaration"
        )
