"""Archive orchestration: sequencing, resumption, and invariant inspection.

No progress flag is ever persisted. Every call re-derives which archive
steps remain from the current state of the metadata record, the file tree,
the registry, and the index, then applies only those, in order:

    metadata -> relocate -> registry -> index -> audit

A crash between any two steps therefore leaves a state that the next call
recognises and finishes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, TypeVar

from .audit import AuditLog, AuditReceipt, AuditRecord, NullAuditLog, build_audit_log
from .config import ConductorSettings
from .documents import EditOutcome, IndexDocument, IndexEditor, RegistryDocument, RegistryEditor
from .errors import ArtifactIOError, AuditError, ConductorError, SplitStateError, UsageError
from .layout import ARCHIVE_DIRNAME, TRACK_ID_PATTERN, TrackLayout, validate_track_id
from .storage import ArtifactStore, FileSystemStore
from .tracks import (
    DEFAULT_ARCHIVE_REASON,
    FileTreeRelocator,
    MetadataStore,
    Track,
    TrackStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArchiveStep(str, Enum):
    METADATA = "metadata"
    RELOCATE = "relocate"
    REGISTRY = "registry"
    INDEX = "index"


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True, slots=True)
class TrackState:
    """What the artifacts currently say about one track.

    ``in_registry_active``, ``in_registry_archived`` and ``in_index`` are
    ``None`` when the corresponding artifact does not exist.
    """

    track_id: str
    status: TrackStatus | None = None
    location: Path | None = None
    archived_location: bool | None = None
    in_registry_active: bool | None = None
    in_registry_archived: bool | None = None
    in_index: bool | None = None
    remaining: tuple[ArchiveStep, ...] = ()
    violations: tuple[str, ...] = ()

    @property
    def consistent(self) -> bool:
        return not self.violations

    def to_dict(self) -> dict[str, Any]:
        return {
            "track_id": self.track_id,
            "status": self.status.value if self.status else None,
            "location": str(self.location) if self.location else None,
            "archived_location": self.archived_location,
            "registry": {"active_row": self.in_registry_active, "archived_entry": self.in_registry_archived},
            "index": {"referenced": self.in_index},
            "remaining_steps": [step.value for step in self.remaining],
            "violations": list(self.violations),
            "consistent": self.consistent,
        }


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    """Outcome of one ``archive`` call."""

    track: Track
    applied: tuple[ArchiveStep, ...] = ()
    skipped: tuple[Path, ...] = ()
    touched: tuple[Path, ...] = ()
    receipt: AuditReceipt | None = None

    @property
    def noop(self) -> bool:
        return not self.applied

    def describe(self) -> str:
        track = self.track
        head = f"track '{track.id}' is {track.status.value} at {track.location}"
        if self.noop and self.receipt is not None:
            return f"{head} (already archived, audit recorded via {self.receipt.backend})"
        if self.noop:
            return f"{head} (already archived, nothing to do)"
        steps = ", ".join(step.value for step in self.applied)
        return f"{head} (applied: {steps})"

    def to_dict(self) -> dict[str, Any]:
        metadata = self.track.metadata
        return {
            "track_id": self.track.id,
            "title": metadata.title,
            "status": self.track.status.value,
            "location": str(self.track.location),
            "archived_at": metadata.archived_at.isoformat() if metadata.archived_at else None,
            "archive_reason": metadata.archive_reason,
            "applied": [step.value for step in self.applied],
            "skipped": [str(path) for path in self.skipped],
            "touched": [str(path) for path in self.touched],
            "audit": (
                {"backend": self.receipt.backend, "summary": self.receipt.summary, "reference": self.receipt.reference}
                if self.receipt
                else None
            ),
        }


@dataclass(slots=True)
class _Progress:
    applied: list[ArchiveStep] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    touched: list[Path] = field(default_factory=list)

    def touch(self, *paths: Path) -> None:
        for path in paths:
            if path not in self.touched:
                self.touched.append(path)


class ArchiveOrchestrator:
    """Move a track from active to archived across every artifact that records it."""

    def __init__(
        self,
        store: ArtifactStore,
        layout: TrackLayout,
        *,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] | None = None,
        strict_registry: bool = False,
        strict_index: bool = False,
    ) -> None:
        self._store = store
        self._layout = layout
        self._audit = audit or NullAuditLog()
        self._clock = clock or _local_now
        self._metadata = MetadataStore(store, layout)
        self._relocator = FileTreeRelocator(store)
        self._registry = RegistryEditor(store, layout.registry_path, strict=strict_registry)
        self._index = IndexEditor(store, layout.index_path, strict=strict_index)

    @classmethod
    def from_settings(
        cls,
        settings: ConductorSettings,
        *,
        audit: AuditLog | None = None,
    ) -> "ArchiveOrchestrator":
        return cls(
            FileSystemStore(settings.resolved_lock_dir),
            TrackLayout(settings.conductor_root),
            audit=audit if audit is not None else build_audit_log(settings),
            strict_registry=settings.strict_registry,
            strict_index=settings.strict_index,
        )

    @property
    def layout(self) -> TrackLayout:
        return self._layout

    @property
    def metadata(self) -> MetadataStore:
        return self._metadata

    # -- inspection -------------------------------------------------------

    def _evaluate(
        self,
        track: Track,
        registry: RegistryDocument | None,
        index: IndexDocument | None,
    ) -> TrackState:
        metadata = track.metadata
        archived = metadata.is_archived
        in_active = registry.has_active_row(track.id) if registry is not None else None
        in_archived = registry.archived_entry(track.id) is not None if registry is not None else None
        in_index = bool(index.references(track.id)) if index is not None else None

        violations: list[str] = []
        if track.archived_location and not archived:
            violations.append("split-state: directory is under the archive root but status is not archived")
        if archived and not track.archived_location:
            violations.append("status is archived but directory is still under the active root")
        if archived and metadata.archived_at is None:
            violations.append("status is archived but archivedAt is not set")
        if metadata.archived != archived:
            violations.append("'archived' flag does not mirror status")
        if archived:
            if in_active:
                violations.append("registry active section still lists the track")
            if in_archived is False:
                violations.append("registry archived section has no entry for the track")
            if in_index:
                violations.append("index still references the track")
        else:
            if in_active is False:
                violations.append("registry active section does not list the track")
            if in_index is False:
                violations.append("index does not reference the track")

        remaining: list[ArchiveStep] = []
        if not metadata.is_complete_archive:
            remaining.append(ArchiveStep.METADATA)
        if not track.archived_location:
            remaining.append(ArchiveStep.RELOCATE)
        if registry is not None and registry.needs_archive(track.id):
            remaining.append(ArchiveStep.REGISTRY)
        if in_index:
            remaining.append(ArchiveStep.INDEX)

        return TrackState(
            track_id=track.id,
            status=metadata.lifecycle,
            location=track.location,
            archived_location=track.archived_location,
            in_registry_active=in_active,
            in_registry_archived=in_archived,
            in_index=in_index,
            remaining=tuple(remaining),
            violations=tuple(violations),
        )

    def inspect(self, track_id: str) -> TrackState:
        """Derive the current state of ``track_id`` without changing anything."""

        track = self._metadata.load(track_id)
        return self._evaluate(track, self._registry.read(), self._index.read())

    def track_ids(self) -> list[str]:
        """Every track id with a directory under either root."""

        ids: set[str] = set()
        for root in (self._layout.active_root, self._layout.archive_root):
            for path in self._store.list_dirs(root):
                if path.name == ARCHIVE_DIRNAME or not TRACK_ID_PATTERN.match(path.name):
                    continue
                ids.add(path.name)
        return sorted(ids)

    def verify(self, track_ids: list[str] | None = None) -> list[TrackState]:
        """Inspect the given tracks (default: all) and report each one's state.

        Tracks that cannot be loaded are reported with the load error as their violation.
        """

        registry = self._registry.read()
        index = self._index.read()
        states: list[TrackState] = []
        for track_id in track_ids if track_ids is not None else self.track_ids():
            try:
                track = self._metadata.load(track_id)
            except ConductorError as exc:
                states.append(TrackState(track_id=track_id, violations=(exc.describe(),)))
                continue
            states.append(self._evaluate(track, registry, index))
        return states

    # -- archival ---------------------------------------------------------

    def _apply(self, step: ArchiveStep, track_id: str, action: Callable[[], T]) -> T:
        try:
            return action()
        except OSError as exc:
            logger.error(
                "Archive step failed",
                extra={"track_id": track_id, "step": step.value, "error": str(exc)},
            )
            raise ArtifactIOError(
                f"{step.value} step failed: {exc}; completed steps are kept and the archive can be re-run",
                track_id=track_id,
                step=step.value,
            ) from exc

    def archive(self, track_id: str, reason: str | None = None) -> ArchiveResult:
        """Archive ``track_id``, resuming a previously interrupted archive if there is one.

        Archiving an already archived track is a successful no-op.
        """

        track_id = validate_track_id(track_id)
        with self._store.lock(f"track-{track_id}"):
            track = self._metadata.load(track_id)
            if track.archived_location and not track.metadata.is_archived:
                raise SplitStateError(
                    f"{track.location} is under the archive root but its status is "
                    f"'{track.metadata.status}'; reconcile manually",
                    track_id=track_id,
                )
            self._registry.require(track_id)
            self._index.require(track_id)

            state = self._evaluate(track, self._registry.read(), self._index.read())
            if not state.remaining:
                logger.info("Track already archived", extra={"track_id": track_id})
                return ArchiveResult(track=track)

            logger.info(
                "Archiving track",
                extra={
                    "track_id": track_id,
                    "title": track.title,
                    "steps": [step.value for step in state.remaining],
                },
            )
            return self._run(track, state.remaining, reason)

    def _run(self, track: Track, remaining: tuple[ArchiveStep, ...], reason: str | None) -> ArchiveResult:
        track_id = track.id
        progress = _Progress()
        for editor in (self._registry, self._index):
            if not editor.exists():
                logger.info(
                    "Shared artifact missing; skipping its update",
                    extra={"track_id": track_id, "path": str(editor.path)},
                )
                progress.skipped.append(editor.path)
        active_dir = self._layout.active_dir(track_id)
        archive_dir = self._layout.archive_dir(track_id)

        metadata = track.metadata
        if ArchiveStep.METADATA in remaining:
            metadata = metadata.mark_archived(reason=reason, archived_at=self._clock())
            self._apply(ArchiveStep.METADATA, track_id, lambda: self._metadata.save(track_id, metadata))
            progress.applied.append(ArchiveStep.METADATA)
            progress.touch(active_dir if not track.archived_location else archive_dir)

        if ArchiveStep.RELOCATE in remaining:
            self._apply(
                ArchiveStep.RELOCATE,
                track_id,
                lambda: self._relocator.relocate(track.location, archive_dir, track_id=track_id),
            )
            progress.applied.append(ArchiveStep.RELOCATE)
            progress.touch(active_dir, archive_dir)

        archived_at = metadata.archived_at or self._clock()
        archive_reason = metadata.archive_reason or DEFAULT_ARCHIVE_REASON

        if ArchiveStep.REGISTRY in remaining:
            outcome = self._apply(
                ArchiveStep.REGISTRY,
                track_id,
                lambda: self._registry.move_to_archived(
                    track_id,
                    metadata.title,
                    archive_reason,
                    archived_at.date().isoformat(),
                    folder=self._layout.archive_folder_link(track_id),
                ),
            )
            self._note(progress, ArchiveStep.REGISTRY, outcome, self._registry.path)

        if ArchiveStep.INDEX in remaining:
            outcome = self._apply(
                ArchiveStep.INDEX,
                track_id,
                lambda: self._index.remove_active_reference(track_id),
            )
            self._note(progress, ArchiveStep.INDEX, outcome, self._index.path)

        final = Track(id=track_id, metadata=metadata, location=archive_dir, archived_location=True)
        result = ArchiveResult(
            track=final,
            applied=tuple(progress.applied),
            skipped=tuple(progress.skipped),
            touched=tuple(progress.touched),
        )
        if result.noop:
            return result

        receipt = self._record_audit(result, archived_at=archived_at, reason=archive_reason)
        logger.info(
            "Archived track",
            extra={"track_id": track_id, "steps": [step.value for step in result.applied]},
        )
        return replace(result, receipt=receipt)

    def _footprint(self, track_id: str) -> tuple[Path, ...]:
        """Every path an archival of ``track_id`` changes, whichever invocation changed it."""

        paths = [self._layout.active_dir(track_id), self._layout.archive_dir(track_id)]
        paths.extend(editor.path for editor in (self._registry, self._index) if editor.exists())
        return tuple(paths)

    def _record_audit(self, result: ArchiveResult, *, archived_at: datetime, reason: str) -> AuditReceipt:
        track_id = result.track.id
        record = AuditRecord(
            track_id=track_id,
            title=result.track.title,
            reason=reason,
            archived_at=archived_at,
            artifacts=self._footprint(track_id),
        )
        try:
            return self._audit.record(record)
        except AuditError as exc:
            exc.result = result
            exc.track_id = exc.track_id or track_id
            logger.warning(
                "Archive applied but audit log failed",
                extra={"track_id": track_id, "error": exc.message},
            )
            raise

    def reaudit(self, track_id: str) -> ArchiveResult:
        """Hand the audit log the record of an archival that is already complete.

        This is how an audit entry lost to a failed or interrupted audit step is
        written after the fact. The track must be fully archived.
        """

        track_id = validate_track_id(track_id)
        with self._store.lock(f"track-{track_id}"):
            track = self._metadata.load(track_id)
            state = self._evaluate(track, self._registry.read(), self._index.read())
            if state.remaining or not state.consistent:
                raise UsageError(
                    "track is not fully archived; run archive first "
                    f"(remaining: {', '.join(step.value for step in state.remaining) or 'none'})",
                    track_id=track_id,
                )
            metadata = track.metadata
            result = ArchiveResult(track=track)
            receipt = self._record_audit(
                result,
                archived_at=metadata.archived_at or self._clock(),
                reason=metadata.archive_reason or DEFAULT_ARCHIVE_REASON,
            )
        logger.info("Re-recorded archive audit entry", extra={"track_id": track_id, "backend": receipt.backend})
        return replace(result, receipt=receipt)

    @staticmethod
    def _note(progress: _Progress, step: ArchiveStep, outcome: EditOutcome, path: Path) -> None:
        if outcome is EditOutcome.UPDATED:
            progress.applied.append(step)
            progress.touch(path)
        elif outcome is EditOutcome.SKIPPED and path not in progress.skipped:
            progress.skipped.append(path)


__all__ = ["ArchiveOrchestrator", "ArchiveResult", "ArchiveStep", "TrackState"]
