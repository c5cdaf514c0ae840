"""Configuration management for conductor tracks."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AuditBackend = Literal["git", "chroma", "none"]


class ConductorSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    conductor_root: Path = Field(
        default=Path(".agent/conductor"), validation_alias="CONDUCTOR_ROOT"
    )
    repo_root: Path = Field(default=Path("."), validation_alias="CONDUCTOR_REPO_ROOT")
    log_level: str = Field(default="INFO", validation_alias="CONDUCTOR_LOG_LEVEL")
    strict_registry: bool = Field(default=False, validation_alias="CONDUCTOR_STRICT_REGISTRY")
    strict_index: bool = Field(default=False, validation_alias="CONDUCTOR_STRICT_INDEX")
    audit_backend: AuditBackend = Field(default="git", validation_alias="CONDUCTOR_AUDIT_BACKEND")
    lock_dir: Path | None = Field(default=None, validation_alias="CONDUCTOR_LOCK_DIR")
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CONDUCTOR_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("audit_backend", mode="before")
    @classmethod
    def _normalize_audit_backend(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or "git"
        return value

    @field_validator("lock_dir", mode="before")
    @classmethod
    def _empty_lock_dir(cls, value):
        if value is None or value == "":
            return None
        return value

    @property
    def resolved_lock_dir(self) -> Path:
        """Directory holding lock files; defaults to ``<conductor_root>/.locks``."""

        return self.lock_dir if self.lock_dir is not None else self.conductor_root / ".locks"

    def resolved(self) -> "ConductorSettings":
        """Return a copy with every path expanded and made absolute."""

        return self.model_copy(
            update={
                "conductor_root": self.conductor_root.expanduser().resolve(),
                "repo_root": self.repo_root.expanduser().resolve(),
                "chroma_persist_path": self.chroma_persist_path.expanduser().resolve(),
                "lock_dir": self.lock_dir.expanduser().resolve() if self.lock_dir is not None else None,
            }
        )


def configure_logging(level: str) -> None:
    """Configure root logging for conductor tools."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def describe_settings_error(exc: ValidationError) -> str:
    """Collapse a settings ``ValidationError`` into one line naming each bad variable."""

    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    )
    return f"invalid configuration ({problems})"


@lru_cache(maxsize=1)
def get_settings() -> ConductorSettings:
    """Return cached settings instance."""

    return ConductorSettings().resolved()


__all__ = ["AuditBackend", "ConductorSettings", "configure_logging", "describe_settings_error", "get_settings"]
