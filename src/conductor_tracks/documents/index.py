"""The conductor navigation index (``index.md``): grammar and editor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import ArtifactMissingError
from ..storage import ArtifactStore
from .matching import reference_pattern
from .registry import EditOutcome

logger = logging.getLogger(__name__)

INDEX_LOCK = "index"


@dataclass(slots=True)
class IndexDocument:
    """The index as a list of lines; any line naming a track is a reference to it."""

    lines: list[str] = field(default_factory=list)
    trailing_newline: bool = True

    @classmethod
    def parse(cls, text: str) -> "IndexDocument":
        trailing_newline = text.endswith("\n")
        body = text[:-1] if trailing_newline else text
        return cls(lines=body.split("\n") if body else [], trailing_newline=trailing_newline)

    def render(self) -> str:
        text = "\n".join(self.lines)
        return text + "\n" if self.trailing_newline and text else text

    def references(self, track_id: str) -> list[str]:
        pattern = reference_pattern(track_id)
        return [line for line in self.lines if pattern.search(line)]

    def remove_references(self, track_id: str) -> int:
        pattern = reference_pattern(track_id)
        kept = [line for line in self.lines if not pattern.search(line)]
        removed = len(self.lines) - len(kept)
        self.lines = kept
        return removed


class IndexEditor:
    """Read-modify-write access to the index under an exclusive lock."""

    def __init__(self, store: ArtifactStore, path: Path, *, strict: bool = False) -> None:
        self._store = store
        self._path = Path(path)
        self._strict = strict

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._store.exists(self._path)

    def require(self, track_id: str | None = None) -> bool:
        if self.exists():
            return True
        if self._strict:
            raise ArtifactMissingError(f"index {self._path} does not exist", track_id=track_id)
        return False

    def read(self) -> IndexDocument | None:
        if not self.exists():
            return None
        return IndexDocument.parse(self._store.read_text(self._path))

    def remove_active_reference(self, track_id: str) -> EditOutcome:
        with self._store.lock(INDEX_LOCK):
            if not self.require(track_id):
                logger.info(
                    "Index missing; skipping index update",
                    extra={"track_id": track_id, "path": str(self._path)},
                )
                return EditOutcome.SKIPPED

            document = IndexDocument.parse(self._store.read_text(self._path))
            removed = document.remove_references(track_id)
            if not removed:
                return EditOutcome.UNCHANGED
            self._store.write_text(self._path, document.render())

        logger.info(
            "Removed track references from index",
            extra={"track_id": track_id, "path": str(self._path), "removed": removed},
        )
        return EditOutcome.UPDATED


__all__ = ["INDEX_LOCK", "IndexDocument", "IndexEditor"]
