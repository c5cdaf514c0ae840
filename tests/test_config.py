from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from conductor_tracks.config import ConductorSettings, get_settings

ENV_VARS = (
    "CONDUCTOR_ROOT",
    "CONDUCTOR_REPO_ROOT",
    "CONDUCTOR_LOG_LEVEL",
    "CONDUCTOR_STRICT_REGISTRY",
    "CONDUCTOR_STRICT_INDEX",
    "CONDUCTOR_AUDIT_BACKEND",
    "CONDUCTOR_LOCK_DIR",
    "CHROMA_PERSIST_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = ConductorSettings()

    assert settings.conductor_root == Path(".agent/conductor")
    assert settings.log_level == "INFO"
    assert settings.audit_backend == "git"
    assert settings.strict_registry is False
    assert settings.strict_index is False
    assert settings.resolved_lock_dir == Path(".agent/conductor/.locks")


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONDUCTOR_ROOT", str(tmp_path / "conductor"))
    monkeypatch.setenv("CONDUCTOR_LOG_LEVEL", " debug ")
    monkeypatch.setenv("CONDUCTOR_AUDIT_BACKEND", "Chroma")
    monkeypatch.setenv("CONDUCTOR_STRICT_REGISTRY", "true")
    monkeypatch.setenv("CONDUCTOR_LOCK_DIR", str(tmp_path / "locks"))

    settings = ConductorSettings()

    assert settings.conductor_root == tmp_path / "conductor"
    assert settings.log_level == "DEBUG"
    assert settings.audit_backend == "chroma"
    assert settings.strict_registry is True
    assert settings.resolved_lock_dir == tmp_path / "locks"


def test_empty_lock_dir_falls_back_to_root(monkeypatch) -> None:
    monkeypatch.setenv("CONDUCTOR_LOCK_DIR", "")

    assert ConductorSettings().lock_dir is None


@pytest.mark.parametrize(("name", "value"), [("CONDUCTOR_LOG_LEVEL", "chatty"), ("CONDUCTOR_AUDIT_BACKEND", "svn")])
def test_invalid_values_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        ConductorSettings()


def test_get_settings_resolves_paths(tmp_path: Path) -> None:
    settings = get_settings()

    assert settings.conductor_root == (tmp_path / ".agent" / "conductor").resolve()
    assert settings.conductor_root.is_absolute()
    assert settings.repo_root == tmp_path.resolve()
    assert get_settings() is settings
