"""Reading and writing per-track metadata records."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..errors import MetadataParseError, NotFoundError, SplitStateError
from ..layout import TrackLayout, validate_track_id
from ..storage import ArtifactStore
from .models import Track, TrackMetadata

logger = logging.getLogger(__name__)


class MetadataStore:
    """Loads and saves ``metadata.json`` for tracks under either root."""

    def __init__(self, store: ArtifactStore, layout: TrackLayout) -> None:
        self._store = store
        self._layout = layout

    def locate(self, track_id: str) -> tuple[Path, bool]:
        """Return the directory currently holding ``track_id`` and whether it is the archived one.

        Raises :class:`SplitStateError` when the track has a directory under both roots.
        """

        track_id = validate_track_id(track_id)
        active = self._layout.active_dir(track_id)
        archived = self._layout.archive_dir(track_id)
        active_present = self._store.is_dir(active)
        archived_present = self._store.is_dir(archived)

        if active_present and archived_present:
            raise SplitStateError(
                f"track directory exists under both {active} and {archived}; reconcile manually",
                track_id=track_id,
            )
        if archived_present:
            return archived, True
        if active_present:
            return active, False
        raise NotFoundError(f"no track directory at {active} or {archived}", track_id=track_id)

    def load(self, track_id: str) -> Track:
        location, archived_location = self.locate(track_id)
        path = self._layout.metadata_path(location)
        if not self._store.exists(path):
            raise NotFoundError(f"metadata record missing at {path}", track_id=track_id)

        raw = self._store.read_text(path)
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MetadataParseError(f"{path} is not valid JSON: {exc}", track_id=track_id) from exc
        if not isinstance(document, dict):
            raise MetadataParseError(f"{path} must contain a JSON object", track_id=track_id)

        try:
            metadata = TrackMetadata.model_validate(document)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
                for error in exc.errors()
            )
            raise MetadataParseError(f"{path} is malformed ({problems})", track_id=track_id) from exc

        return Track(
            id=track_id,
            metadata=metadata,
            location=location,
            archived_location=archived_location,
        )

    def save(self, track_id: str, metadata: TrackMetadata) -> Path:
        """Atomically replace the record of ``track_id`` wherever the track currently lives."""

        location, _ = self.locate(track_id)
        path = self._layout.metadata_path(location)
        content = json.dumps(metadata.to_record(), indent=2, ensure_ascii=False) + "\n"
        self._store.write_text(path, content)
        logger.debug(
            "Saved track metadata",
            extra={"track_id": track_id, "path": str(path), "status": metadata.status},
        )
        return path


__all__ = ["MetadataStore"]
