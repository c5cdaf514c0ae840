"""Path derivation for tracks under a conductor root."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from .errors import UsageError

TRACK_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

ARCHIVE_DIRNAME = "_archive"
METADATA_FILENAME = "metadata.json"


def validate_track_id(track_id: str | None) -> str:
    """Return ``track_id`` stripped, or raise :class:`UsageError` if it cannot name a track."""

    candidate = (track_id or "").strip()
    if not candidate:
        raise UsageError("a track id is required")
    if not TRACK_ID_PATTERN.match(candidate) or ".." in candidate:
        raise UsageError(
            f"invalid track id '{candidate}': use letters, digits, '.', '_' or '-' "
            "and start with a letter or digit"
        )
    return candidate


@dataclass(frozen=True, slots=True)
class TrackLayout:
    """Where a conductor workspace keeps its tracks and shared documents."""

    root: Path

    @property
    def active_root(self) -> Path:
        return self.root / "tracks"

    @property
    def archive_root(self) -> Path:
        return self.active_root / ARCHIVE_DIRNAME

    @property
    def registry_path(self) -> Path:
        return self.root / "tracks.md"

    @property
    def index_path(self) -> Path:
        return self.root / "index.md"

    def active_dir(self, track_id: str) -> Path:
        return self.active_root / validate_track_id(track_id)

    def archive_dir(self, track_id: str) -> Path:
        return self.archive_root / validate_track_id(track_id)

    def metadata_path(self, track_dir: Path) -> Path:
        return track_dir / METADATA_FILENAME

    def is_archived_location(self, path: Path) -> bool:
        return path.parent == self.archive_root

    def archive_folder_link(self, track_id: str) -> str:
        """Registry-relative link to an archived track folder."""

        return f"./tracks/{ARCHIVE_DIRNAME}/{track_id}/"


__all__ = [
    "ARCHIVE_DIRNAME",
    "METADATA_FILENAME",
    "TRACK_ID_PATTERN",
    "TrackLayout",
    "validate_track_id",
]
