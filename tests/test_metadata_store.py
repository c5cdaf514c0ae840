from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conductor_tracks.errors import MetadataParseError, NotFoundError, SplitStateError, UsageError
from conductor_tracks.layout import TrackLayout, validate_track_id
from conductor_tracks.tracks import MetadataStore, TrackMetadata, TrackStatus


def test_validate_track_id_rejects_paths_and_reserved_names() -> None:
    assert validate_track_id("  backend-standards_20260220 ") == "backend-standards_20260220"
    for bad in ["", "   ", "_archive", ".hidden", "a/b", "../x", "a..b", "a b"]:
        with pytest.raises(UsageError):
            validate_track_id(bad)


def test_metadata_accepts_legacy_keys_and_keeps_unknown_ones() -> None:
    metadata = TrackMetadata.model_validate(
        {
            "track_id": "t1",
            "title": "Title",
            "status": "archived",
            "archived": True,
            "archived_at": "2026-02-20T15:30:00+01:00",
            "archive_reason": "Superseded",
        }
    )

    assert metadata.is_archived
    assert metadata.archive_reason == "Superseded"
    record = metadata.to_record()
    assert record["archivedAt"] == "2026-02-20T15:30:00+01:00"
    assert record["archiveReason"] == "Superseded"
    assert record["track_id"] == "t1"
    assert "archived_at" not in record


def test_non_archived_status_strings_are_active() -> None:
    metadata = TrackMetadata.model_validate({"title": "T", "status": "in_progress"})
    assert metadata.lifecycle is TrackStatus.ACTIVE
    assert metadata.to_record()["status"] == "in_progress"
    assert "archivedAt" not in metadata.to_record()


def test_mark_archived_defaults_reason_and_keeps_first_timestamp() -> None:
    first = datetime(2026, 2, 20, tzinfo=timezone.utc)
    later = datetime(2026, 3, 1, tzinfo=timezone.utc)
    metadata = TrackMetadata.model_validate({"title": "T"}).mark_archived(reason="   ", archived_at=first)

    assert metadata.status == "archived"
    assert metadata.archived is True
    assert metadata.archive_reason == "Completed"
    assert metadata.mark_archived(reason="Other", archived_at=later) is metadata


def test_load_and_save_round_trip(memory_store, memory_layout: TrackLayout) -> None:
    store = MetadataStore(memory_store, memory_layout)
    track = store.load("frontend-polish_20260301")

    assert track.title == "Frontend Polish"
    assert track.status is TrackStatus.ACTIVE
    assert track.archived_location is False

    updated = track.metadata.mark_archived(reason="Dropped", archived_at=datetime(2026, 3, 2, tzinfo=timezone.utc))
    path = store.save(track.id, updated)

    saved = json.loads(memory_store.read_text(path))
    assert saved["status"] == "archived"
    assert saved["archived"] is True
    assert saved["archiveReason"] == "Dropped"
    assert saved["type"] == "feature"


def test_load_missing_track(memory_store, memory_layout: TrackLayout) -> None:
    with pytest.raises(NotFoundError):
        MetadataStore(memory_store, memory_layout).load("does-not-exist")


def test_load_rejects_record_without_title(memory_store, memory_layout: TrackLayout) -> None:
    path = memory_layout.metadata_path(memory_layout.active_dir("frontend-polish_20260301"))
    memory_store.write_text(path, json.dumps({"status": "new"}))

    with pytest.raises(MetadataParseError) as excinfo:
        MetadataStore(memory_store, memory_layout).load("frontend-polish_20260301")
    assert "title" in str(excinfo.value)


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({"title": 42})])
def test_load_rejects_malformed_records(memory_store, memory_layout: TrackLayout, content: str) -> None:
    path = memory_layout.metadata_path(memory_layout.active_dir("frontend-polish_20260301"))
    memory_store.write_text(path, content)

    with pytest.raises(MetadataParseError):
        MetadataStore(memory_store, memory_layout).load("frontend-polish_20260301")


def test_directory_under_both_roots_is_split_state(memory_store, memory_layout: TrackLayout) -> None:
    memory_store.mkdir(memory_layout.archive_dir("frontend-polish_20260301"))

    with pytest.raises(SplitStateError):
        MetadataStore(memory_store, memory_layout).load("frontend-polish_20260301")


def test_file_system_save_leaves_no_temp_files(fs_store, fs_layout: TrackLayout) -> None:
    store = MetadataStore(fs_store, fs_layout)
    track = store.load("backend-standards_20260220")
    path = store.save(track.id, track.metadata.mark_archived(reason=None, archived_at=datetime.now(timezone.utc)))

    siblings = sorted(item.name for item in Path(path).parent.iterdir())
    assert siblings == ["metadata.json", "plan.md"]
    assert json.loads(Path(path).read_text(encoding="utf-8"))["archiveReason"] == "Completed"
