"""Artifact storage backends: the real file system and an in-memory double."""

from __future__ import annotations

import errno
import os
import shutil
import tempfile
import threading
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Iterator, Protocol


class ArtifactStore(Protocol):
    """Protocol for the minimal storage API used by the archival engine."""

    def exists(self, path: Path) -> bool:
        ...

    def is_dir(self, path: Path) -> bool:
        ...

    def list_dirs(self, path: Path) -> list[Path]:
        ...

    def read_text(self, path: Path) -> str:
        ...

    def write_text(self, path: Path, content: str) -> None:
        """Replace ``path`` with ``content`` so readers never see a partial write."""
        ...

    def move(self, source: Path, dest: Path) -> None:
        ...

    def lock(self, key: str) -> ContextManager[None]:
        """Hold an exclusive lock named ``key`` for the duration of the context."""
        ...


class FileSystemStore:
    """Store artifacts on the local file system.

    Writes go through a temporary sibling file and ``os.replace``; locks are
    ``fcntl.flock`` sidecar files under ``lock_dir`` so they survive the
    atomic replacement of the artifact they protect.
    """

    def __init__(self, lock_dir: Path) -> None:
        self._lock_dir = Path(lock_dir)

    @property
    def lock_dir(self) -> Path:
        return self._lock_dir

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def list_dirs(self, path: Path) -> list[Path]:
        base = Path(path)
        if not base.is_dir():
            return []
        return sorted(child for child in base.iterdir() if child.is_dir())

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def move(self, source: Path, dest: Path) -> None:
        target = Path(dest)
        if target.exists():
            raise FileExistsError(errno.EEXIST, "destination already exists", str(target))
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        try:
            import fcntl
        except ModuleNotFoundError as exc:  # pragma: no cover - platform dependent
            raise RuntimeError("Artifact locks require fcntl (not available on this platform).") from exc

        lock_path = self._lock_dir / f"{key}.lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class MemoryStore:
    """In-memory artifact store for tests.

    Directories are tracked explicitly; writing a file creates its parents.
    ``fail_on`` arms an ``OSError`` for the next matching operation, which is
    how tests simulate a crash between two archival steps.
    """

    def __init__(self) -> None:
        self._files: dict[Path, str] = {}
        self._dirs: set[Path] = set()
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._guard = threading.Lock()
        self._failures: dict[tuple[str, Path | None], int] = {}
        self.lock_history: list[str] = []

    def fail_on(self, operation: str, path: Path | None = None, *, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` (optionally on ``path``) raise ``OSError``."""

        self._failures[(operation, Path(path) if path is not None else None)] = times

    def _check(self, operation: str, path: Path) -> None:
        for key in ((operation, path), (operation, None)):
            remaining = self._failures.get(key, 0)
            if remaining > 0:
                self._failures[key] = remaining - 1
                raise OSError(errno.EIO, f"simulated {operation} failure", str(path))

    def mkdir(self, path: Path) -> None:
        current = Path(path)
        with self._guard:
            self._dirs.add(current)
            self._dirs.update(current.parents)

    def exists(self, path: Path) -> bool:
        target = Path(path)
        return target in self._files or target in self._dirs

    def is_dir(self, path: Path) -> bool:
        return Path(path) in self._dirs

    def list_dirs(self, path: Path) -> list[Path]:
        base = Path(path)
        return sorted(item for item in self._dirs if item.parent == base)

    def read_text(self, path: Path) -> str:
        target = Path(path)
        self._check("read_text", target)
        try:
            return self._files[target]
        except KeyError:
            raise FileNotFoundError(errno.ENOENT, "no such file", str(target)) from None

    def write_text(self, path: Path, content: str) -> None:
        target = Path(path)
        self._check("write_text", target)
        with self._guard:
            self._dirs.update(target.parents)
            self._files[target] = content

    def move(self, source: Path, dest: Path) -> None:
        src = Path(source)
        dst = Path(dest)
        self._check("move", src)
        with self._guard:
            if src not in self._dirs and src not in self._files:
                raise FileNotFoundError(errno.ENOENT, "no such file or directory", str(src))
            if dst in self._dirs or dst in self._files:
                raise FileExistsError(errno.EEXIST, "destination already exists", str(dst))
            self._dirs.update(dst.parents)
            self._files = {_rebase(path, src, dst): text for path, text in self._files.items()}
            self._dirs = {_rebase(path, src, dst) for path in self._dirs}

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[key]
        with lock:
            self.lock_history.append(key)
            yield

    def snapshot(self) -> dict[str, object]:
        """Return a copy of every file and directory, for before/after comparisons."""

        with self._guard:
            return {
                "files": {str(path): text for path, text in self._files.items()},
                "dirs": sorted(str(path) for path in self._dirs),
            }


def _rebase(path: Path, source: Path, dest: Path) -> Path:
    if path == source:
        return dest
    if source in path.parents:
        return dest / path.relative_to(source)
    return path


__all__ = ["ArtifactStore", "FileSystemStore", "MemoryStore"]
