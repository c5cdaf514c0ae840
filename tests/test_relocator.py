from __future__ import annotations

from pathlib import Path

import pytest

from conductor_tracks.errors import AlreadyAtDestinationError, NotFoundError, SplitStateError
from conductor_tracks.storage import MemoryStore
from conductor_tracks.tracks import FileTreeRelocator, RelocationOutcome

SOURCE = Path("/ws/tracks/t1")
DEST = Path("/ws/tracks/_archive/t1")


def test_relocate_moves_directory_contents() -> None:
    store = MemoryStore()
    store.write_text(SOURCE / "metadata.json", "{}")
    store.write_text(SOURCE / "notes" / "a.md", "a")

    outcome = FileTreeRelocator(store).relocate(SOURCE, DEST)

    assert outcome is RelocationOutcome.MOVED
    assert not store.exists(SOURCE)
    assert store.read_text(DEST / "notes" / "a.md") == "a"
    assert store.is_dir(DEST / "notes")


def test_relocate_is_noop_when_already_moved() -> None:
    store = MemoryStore()
    store.write_text(DEST / "metadata.json", "{}")

    assert FileTreeRelocator(store).relocate(SOURCE, DEST) is RelocationOutcome.ALREADY_MOVED


def test_relocate_refuses_when_both_exist() -> None:
    store = MemoryStore()
    store.write_text(SOURCE / "metadata.json", "{}")
    store.write_text(DEST / "metadata.json", "{}")

    with pytest.raises(SplitStateError):
        FileTreeRelocator(store).relocate(SOURCE, DEST, track_id="t1")
    assert store.exists(SOURCE) and store.exists(DEST)


def test_relocate_missing_source() -> None:
    with pytest.raises(NotFoundError):
        FileTreeRelocator(MemoryStore()).relocate(SOURCE, DEST)


def test_relocate_onto_itself() -> None:
    with pytest.raises(AlreadyAtDestinationError):
        FileTreeRelocator(MemoryStore()).relocate(SOURCE, SOURCE)


def test_relocate_on_file_system(fs_store, fs_layout) -> None:
    source = fs_layout.active_dir("frontend-polish_20260301")
    dest = fs_layout.archive_dir("frontend-polish_20260301")

    FileTreeRelocator(fs_store).relocate(source, dest)

    assert not source.exists()
    assert (dest / "metadata.json").is_file()
