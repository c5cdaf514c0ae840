from __future__ import annotations

import argparse
import importlib.util
import json
from datetime import datetime
from pathlib import Path

import pytest

from conductor_tracks.cli import main, run
from conductor_tracks.config import get_settings
from conductor_tracks.storage import ArchiveEventRecord, FileSystemStore

TRACK = "backend-standards_20260220"


@pytest.fixture
def workspace(monkeypatch, tmp_path: Path, seed) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in ("CONDUCTOR_ROOT", "CONDUCTOR_AUDIT_BACKEND", "CONDUCTOR_LOCK_DIR"):
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / ".agent" / "conductor"
    seed(FileSystemStore(root / ".locks"), root)
    return root


def _run(root: Path, *argv: str) -> int:
    return run(["--root", str(root), "--audit", "none", *argv])


def test_archive_then_rerun(workspace: Path, capsys) -> None:
    assert _run(workspace, "archive", TRACK, "Superseded") == 0
    first = capsys.readouterr().out
    assert "applied: metadata, relocate, registry, index" in first
    assert (workspace / "tracks" / "_archive" / TRACK / "plan.md").is_file()

    assert _run(workspace, "archive", TRACK) == 0
    assert "nothing to do" in capsys.readouterr().out

    metadata = json.loads((workspace / "tracks" / "_archive" / TRACK / "metadata.json").read_text())
    assert metadata["archiveReason"] == "Superseded"


def test_archive_json_output(workspace: Path, capsys) -> None:
    assert _run(workspace, "archive", TRACK, "--json") == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["track_id"] == TRACK
    assert payload["status"] == "archived"
    assert payload["archive_reason"] == "Completed"
    assert payload["audit"] == {"backend": "none", "summary": "audit disabled", "reference": ""}


def test_missing_track_exits_nonzero(workspace: Path, capsys) -> None:
    assert _run(workspace, "archive", "no-such-track") == 1
    assert "error[not-found]" in capsys.readouterr().err


def test_invalid_track_id_is_usage_error(workspace: Path, capsys) -> None:
    assert _run(workspace, "archive", "../escape") == 2
    assert "error[usage]" in capsys.readouterr().err


def test_main_raises_system_exit(workspace: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--root", str(workspace), "--audit", "none", "archive", "no-such-track"])
    assert excinfo.value.code == 1


def test_show_reports_state(workspace: Path, capsys) -> None:
    assert _run(workspace, "show", TRACK) == 0

    state = json.loads(capsys.readouterr().out)
    assert state["status"] == "active"
    assert state["remaining_steps"] == ["metadata", "relocate", "registry", "index"]
    assert state["consistent"] is True


def test_verify_flags_inconsistent_track(workspace: Path, capsys) -> None:
    assert _run(workspace, "verify") == 0
    assert f"{TRACK} [ok] active" in capsys.readouterr().out

    (workspace / "index.md").write_text("# Conductor Index\n", encoding="utf-8")

    assert _run(workspace, "verify", TRACK) == 1
    assert f"{TRACK} [violation] index does not reference the track" in capsys.readouterr().out


def test_strict_registry_flag(workspace: Path, capsys) -> None:
    (workspace / "tracks.md").unlink()

    assert _run(workspace, "--strict-registry", "archive", TRACK) == 1
    assert "error[artifact-missing]" in capsys.readouterr().err
    assert (workspace / "tracks" / TRACK).is_dir()


def test_reaudit_after_archive(workspace: Path, capsys) -> None:
    assert _run(workspace, "reaudit", TRACK) == 2
    assert "not fully archived" in capsys.readouterr().err

    assert _run(workspace, "archive", TRACK) == 0
    capsys.readouterr()

    assert _run(workspace, "reaudit", TRACK) == 0
    assert "audit recorded via none" in capsys.readouterr().out


@pytest.mark.parametrize(("name", "value"), [("CONDUCTOR_AUDIT_BACKEND", "foo"), ("CONDUCTOR_LOG_LEVEL", "loud")])
def test_invalid_environment_is_usage_error(workspace: Path, monkeypatch, capsys, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    assert _run(workspace, "verify") == 2
    err = capsys.readouterr().err
    assert err.startswith("error[usage]: invalid configuration")
    assert name.lower().removeprefix("conductor_") in err.lower()
    assert len(err.strip().splitlines()) == 1


def _load_diag():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "conductor_diag.py"
    spec = importlib.util.spec_from_file_location("conductor_diag_test_module", module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


def _archive_record(track_id: str, reason: str, recorded: str) -> ArchiveEventRecord:
    return ArchiveEventRecord(
        track_id=track_id,
        title=track_id.title(),
        reason=reason,
        archived_at=datetime.fromisoformat("2026-02-20T15:30:00+01:00"),
        artifacts=[f"tracks/_archive/{track_id}"],
        recorded_at=datetime.fromisoformat(recorded),
        metadata={},
    )


class StubArchiveStore:
    def __init__(self) -> None:
        self.records = [
            _archive_record("beta", "Completed", "2026-02-21T09:00:00+00:00"),
            _archive_record("alpha", "Superseded", "2026-02-20T09:00:00+00:00"),
            _archive_record("gamma", "Completed", "2026-02-22T09:00:00+00:00"),
        ]

    def list_archives(self, track_id=None):
        return [record for record in self.records if track_id is None or record.track_id == track_id]


def test_diag_archives_sorted_and_limited(monkeypatch, capsys) -> None:
    diag = _load_diag()
    monkeypatch.setattr(diag, "load_store", lambda _settings: StubArchiveStore())

    diag.cmd_archives(argparse.Namespace(track_id=None, limit=2))

    payload = json.loads(capsys.readouterr().out)
    assert [entry["track_id"] for entry in payload] == ["beta", "gamma"]
    assert payload[0]["archived_at"] == "2026-02-20T15:30:00+01:00"


def test_diag_reasons_counts(monkeypatch, capsys) -> None:
    diag = _load_diag()
    monkeypatch.setattr(diag, "load_store", lambda _settings: StubArchiveStore())

    diag.cmd_reasons(argparse.Namespace())

    payload = json.loads(capsys.readouterr().out)
    assert payload == {"archives_total": 3, "reason_counts": {"Completed": 2, "Superseded": 1}}


def test_diag_reports_invalid_environment(monkeypatch, capsys) -> None:
    diag = _load_diag()
    monkeypatch.setenv("CONDUCTOR_AUDIT_BACKEND", "foo")
    get_settings.cache_clear()

    with pytest.raises(SystemExit) as excinfo:
        diag.main(["reasons"])

    get_settings.cache_clear()
    assert excinfo.value.code == 2
    assert "invalid configuration" in capsys.readouterr().out
