"""Storage abstractions for conductor tracks."""

from .chroma import ChromaEvent, ChromaStore, ChromaUnavailableError
from .files import ArtifactStore, FileSystemStore, MemoryStore
from .models import ArchiveEventRecord

__all__ = [
    "ArchiveEventRecord",
    "ArtifactStore",
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
    "FileSystemStore",
    "MemoryStore",
]
