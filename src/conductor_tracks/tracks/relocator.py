"""Moving track directories between the active and archive roots."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from ..errors import AlreadyAtDestinationError, NotFoundError, SplitStateError
from ..storage import ArtifactStore

logger = logging.getLogger(__name__)


class RelocationOutcome(str, Enum):
    MOVED = "moved"
    ALREADY_MOVED = "already_moved"


class FileTreeRelocator:
    """Relocate a directory, treating a completed earlier move as success."""

    def __init__(self, store: ArtifactStore) -> None:
        self._store = store

    def relocate(self, source: Path, dest: Path, *, track_id: str | None = None) -> RelocationOutcome:
        source = Path(source)
        dest = Path(dest)
        if source == dest:
            raise AlreadyAtDestinationError(f"{source} is already the destination", track_id=track_id)

        source_present = self._store.exists(source)
        dest_present = self._store.exists(dest)

        if source_present and dest_present:
            raise SplitStateError(
                f"both {source} and {dest} exist; refusing to merge or overwrite",
                track_id=track_id,
            )
        if dest_present:
            logger.info(
                "Relocation already completed",
                extra={"track_id": track_id, "source": str(source), "dest": str(dest)},
            )
            return RelocationOutcome.ALREADY_MOVED
        if not source_present:
            raise NotFoundError(f"nothing to relocate at {source}", track_id=track_id)

        self._store.move(source, dest)
        logger.info(
            "Relocated track directory",
            extra={"track_id": track_id, "source": str(source), "dest": str(dest)},
        )
        return RelocationOutcome.MOVED


__all__ = ["FileTreeRelocator", "RelocationOutcome"]
