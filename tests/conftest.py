from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conductor_tracks.audit import AuditReceipt, AuditRecord
from conductor_tracks.errors import AuditError
from conductor_tracks.layout import TrackLayout
from conductor_tracks.orchestrator import ArchiveOrchestrator
from conductor_tracks.storage import FileSystemStore, MemoryStore

FIXED_NOW = datetime(2026, 2, 20, 15, 30, tzinfo=timezone(timedelta(hours=1)))

TRACKS = {
    "backend-standards_20260220": "Backend Standards",
    "backend-standards_20260220-v2": "Backend Standards v2",
    "frontend-polish_20260301": "Frontend Polish",
}

REGISTRY_TEXT = """# Tracks Registry

| Status | Track ID | Title | Created |
|--------|----------|-------|---------|
| [~] | backend-standards_20260220 | Backend Standards | 2026-02-20 |
| [ ] | backend-standards_20260220-v2 | Backend Standards v2 | 2026-02-21 |
| [ ] | [frontend-polish_20260301](./tracks/frontend-polish_20260301/) | Frontend Polish | 2026-03-01 |
"""

INDEX_TEXT = """# Conductor Index

## Active Tracks

- [Backend Standards](./tracks/backend-standards_20260220/)
- [Backend Standards v2](./tracks/backend-standards_20260220-v2/)
- [Frontend Polish](./tracks/frontend-polish_20260301/)

## Guides

- [Workflow](./workflow.md)
"""


def seed_workspace(store, root: Path, *, registry: bool = True, index: bool = True) -> TrackLayout:
    layout = TrackLayout(root)
    for track_id, title in TRACKS.items():
        track_dir = layout.active_dir(track_id)
        record = {
            "track_id": track_id,
            "type": "feature",
            "status": "in_progress",
            "created_at": "2026-02-20T09:00:00Z",
            "title": title,
        }
        store.write_text(track_dir / "metadata.json", json.dumps(record, indent=2))
        store.write_text(track_dir / "plan.md", f"# {title}\n")
    if registry:
        store.write_text(layout.registry_path, REGISTRY_TEXT)
    if index:
        store.write_text(layout.index_path, INDEX_TEXT)
    return layout


class RecordingAuditLog:
    def __init__(self, *, fail: bool = False) -> None:
        self.records: list[AuditRecord] = []
        self.fail = fail

    def record(self, record: AuditRecord) -> AuditReceipt:
        if self.fail:
            raise AuditError("audit sink offline", track_id=record.track_id)
        self.records.append(record)
        return AuditReceipt(backend="recording", summary="recorded", reference=str(len(self.records)))


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def memory_layout(memory_store: MemoryStore) -> TrackLayout:
    return seed_workspace(memory_store, Path("/ws/.agent/conductor"))


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def orchestrator(memory_store: MemoryStore, memory_layout: TrackLayout, audit_log: RecordingAuditLog) -> ArchiveOrchestrator:
    return ArchiveOrchestrator(memory_store, memory_layout, audit=audit_log, clock=lambda: FIXED_NOW)


@pytest.fixture
def fs_store(tmp_path: Path) -> FileSystemStore:
    return FileSystemStore(tmp_path / ".agent" / "conductor" / ".locks")


@pytest.fixture
def fs_layout(fs_store: FileSystemStore, tmp_path: Path) -> TrackLayout:
    return seed_workspace(fs_store, tmp_path / ".agent" / "conductor")


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def tracks() -> dict[str, str]:
    return dict(TRACKS)


@pytest.fixture
def registry_text() -> str:
    return REGISTRY_TEXT


@pytest.fixture
def index_text() -> str:
    return INDEX_TEXT


@pytest.fixture
def seed():
    return seed_workspace


@pytest.fixture
def make_audit_log():
    return RecordingAuditLog
