"""Track records and their file-tree footprint."""

from .metadata import MetadataStore
from .models import DEFAULT_ARCHIVE_REASON, Track, TrackMetadata, TrackStatus, normalize_reason
from .relocator import FileTreeRelocator, RelocationOutcome

__all__ = [
    "DEFAULT_ARCHIVE_REASON",
    "FileTreeRelocator",
    "MetadataStore",
    "RelocationOutcome",
    "Track",
    "TrackMetadata",
    "TrackStatus",
    "normalize_reason",
]
