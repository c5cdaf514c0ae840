"""Audit log collaborators that receive one record per completed archival."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from .config import ConductorSettings
from .errors import AuditError
from .storage import ChromaStore, ChromaUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """Everything the audit log learns about one archival."""

    track_id: str
    title: str
    reason: str
    archived_at: datetime
    artifacts: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        return f"chore(conductor): archive track '{self.track_id}' (Reason: {self.reason})"


@dataclass(frozen=True, slots=True)
class AuditReceipt:
    backend: str
    summary: str
    reference: str = ""


class AuditLog(Protocol):
    def record(self, record: AuditRecord) -> AuditReceipt:
        """Persist ``record`` or raise :class:`AuditError`."""
        ...


class NullAuditLog:
    """Accepts every record and keeps nothing."""

    def record(self, record: AuditRecord) -> AuditReceipt:
        return AuditReceipt(backend="none", summary="audit disabled")


GitRunner = Callable[..., subprocess.CompletedProcess]


def _run_git(repo_root: Path, *args: str, timeout_s: float = 30.0) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout_s,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        return subprocess.CompletedProcess(
            args=["git", *args], returncode=124, stdout="", stderr=f"git invocation failed: {exc}"
        )


def _detail(proc: subprocess.CompletedProcess) -> str:
    return " ".join((proc.stderr or "").strip().split()) or f"exit={proc.returncode}"


class GitAuditLog:
    """Record archivals as commits in the surrounding git repository."""

    def __init__(self, repo_root: Path, *, runner: GitRunner | None = None) -> None:
        self._repo_root = Path(repo_root)
        self._runner = runner or _run_git

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return self._runner(self._repo_root, *args)

    def record(self, record: AuditRecord) -> AuditReceipt:
        probe = self._git("rev-parse", "--is-inside-work-tree")
        if probe.returncode != 0 or probe.stdout.strip() != "true":
            raise AuditError(f"{self._repo_root} is not a git work tree", track_id=record.track_id)

        present = [str(path) for path in record.artifacts if path.exists()]
        removed = [str(path) for path in record.artifacts if not path.exists()]

        if removed:
            proc = self._git("rm", "-r", "--cached", "--ignore-unmatch", "-q", "--", *removed)
            if proc.returncode != 0:
                raise AuditError(f"git rm failed: {_detail(proc)}", track_id=record.track_id)
        if present:
            proc = self._git("add", "-A", "--", *present)
            if proc.returncode != 0:
                raise AuditError(f"git add failed: {_detail(proc)}", track_id=record.track_id)

        staged = self._git("diff", "--cached", "--quiet")
        if staged.returncode == 0:
            raise AuditError("nothing staged to commit for the archived track", track_id=record.track_id)
        if staged.returncode != 1:
            raise AuditError(f"git diff failed: {_detail(staged)}", track_id=record.track_id)

        commit = self._git("commit", "-m", record.message)
        if commit.returncode != 0:
            raise AuditError(f"git commit failed: {_detail(commit)}", track_id=record.track_id)

        head = self._git("rev-parse", "--short", "HEAD")
        sha = head.stdout.strip() if head.returncode == 0 else ""
        logger.info("Committed archival", extra={"track_id": record.track_id, "commit": sha})
        return AuditReceipt(backend="git", summary="commit created", reference=sha)


class ChromaAuditLog:
    """Record archivals as events in a Chroma collection."""

    def __init__(self, store: ChromaStore) -> None:
        self._store = store

    def record(self, record: AuditRecord) -> AuditReceipt:
        try:
            event = self._store.record_archive(
                track_id=record.track_id,
                title=record.title,
                reason=record.reason,
                archived_at=record.archived_at,
                artifacts=[str(path) for path in record.artifacts],
            )
        except ChromaUnavailableError as exc:
            raise AuditError(f"Chroma unavailable: {exc}", track_id=record.track_id) from exc
        except Exception as exc:  # chromadb raises its own error types
            raise AuditError(f"Chroma rejected archive event: {exc}", track_id=record.track_id) from exc
        logger.info("Recorded archival event", extra={"track_id": record.track_id, "event_id": event.id})
        return AuditReceipt(backend="chroma", summary="event recorded", reference=event.id)


def build_audit_log(settings: ConductorSettings) -> AuditLog:
    if settings.audit_backend == "none":
        return NullAuditLog()
    if settings.audit_backend == "chroma":
        return ChromaAuditLog(ChromaStore(settings.chroma_persist_path))
    return GitAuditLog(settings.repo_root)


__all__ = [
    "AuditLog",
    "AuditReceipt",
    "AuditRecord",
    "ChromaAuditLog",
    "GitAuditLog",
    "NullAuditLog",
    "build_audit_log",
]
