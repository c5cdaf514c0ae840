"""Shared markdown documents: the track registry and the navigation index."""

from .index import IndexDocument, IndexEditor
from .matching import cell_names_track, references_track
from .registry import ARCHIVED_HEADER, ArchivedEntry, EditOutcome, RegistryDocument, RegistryEditor, TableRow

__all__ = [
    "ARCHIVED_HEADER",
    "ArchivedEntry",
    "EditOutcome",
    "IndexDocument",
    "IndexEditor",
    "RegistryDocument",
    "RegistryEditor",
    "TableRow",
    "cell_names_track",
    "references_track",
]
