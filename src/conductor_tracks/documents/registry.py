"""The shared track registry (``tracks.md``): grammar and editor.

The registry is a markdown document with two parts. Everything before the
``## Archived Tracks`` heading is the active section, where each track is a
table row. After the heading, each archived track is a block::

    ### <id>: <title>

    **Reason:** <reason>
    **Archived:** <YYYY-MM-DD>
    **Folder:** [./tracks/_archive/<id>/](./tracks/_archive/<id>/)

A later level-2 heading ends the archived section. Lines the parser does not
model are carried through unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from ..errors import ArtifactMissingError
from ..storage import ArtifactStore
from .matching import cell_names_track

logger = logging.getLogger(__name__)

ARCHIVED_HEADER = "## Archived Tracks"
REGISTRY_LOCK = "registry"

_ARCHIVED_HEADER_RE = re.compile(r"^##\s+archived\s+tracks\s*$", re.IGNORECASE)
_SECTION_RE = re.compile(r"^##\s")
_ENTRY_RE = re.compile(r"^###\s+(?P<track_id>[^\s:]+)\s*:\s*(?P<title>.*?)\s*$")
_FIELD_RE = re.compile(r"^\*\*(?P<key>[^*]+?):\*\*\s*(?P<value>.*?)\s*$")
_SEPARATOR_CELL_RE = re.compile(r"^:?-{3,}:?$")


class EditOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(slots=True)
class TableRow:
    """A ``| ... |`` line in the active section."""

    line: str
    cells: tuple[str, ...]

    @classmethod
    def parse(cls, line: str) -> "TableRow | None":
        stripped = line.strip()
        if not stripped.startswith("|"):
            return None
        body = stripped[1:-1] if stripped.endswith("|") and len(stripped) > 1 else stripped[1:]
        cells = tuple(cell.strip() for cell in re.split(r"(?<!\\)\|", body))
        return cls(line=line, cells=cells)

    @property
    def is_separator(self) -> bool:
        return bool(self.cells) and all(_SEPARATOR_CELL_RE.match(cell) for cell in self.cells if cell)

    def names(self, track_id: str) -> bool:
        if self.is_separator:
            return False
        return any(cell_names_track(cell, track_id) for cell in self.cells)


@dataclass(slots=True)
class ArchivedEntry:
    """One ``### <id>: <title>`` block in the archived section."""

    track_id: str
    title: str
    lines: list[str]
    fields: dict[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        track_id: str,
        title: str,
        reason: str,
        archived_on: str,
        folder: str,
    ) -> "ArchivedEntry":
        title = " ".join(title.split())
        reason = " ".join(reason.split())
        fields = {"Reason": reason, "Archived": archived_on, "Folder": f"[{folder}]({folder})"}
        lines = [
            f"### {track_id}: {title}",
            "",
            *(f"**{key}:** {value}" for key, value in fields.items()),
        ]
        return cls(track_id=track_id, title=title, lines=lines, fields=fields)

    @property
    def reason(self) -> str | None:
        return self.fields.get("Reason")

    @property
    def archived_on(self) -> str | None:
        return self.fields.get("Archived")


ActiveLine = Union[str, TableRow]
ArchivedLine = Union[str, ArchivedEntry]


@dataclass(slots=True)
class RegistryDocument:
    active: list[ActiveLine] = field(default_factory=list)
    header: str | None = None
    archived: list[ArchivedLine] = field(default_factory=list)
    tail: list[str] = field(default_factory=list)
    trailing_newline: bool = True

    @classmethod
    def parse(cls, text: str) -> "RegistryDocument":
        trailing_newline = text.endswith("\n")
        body = text[:-1] if trailing_newline else text
        lines = body.split("\n") if body else []

        document = cls(trailing_newline=trailing_newline or not lines)
        phase = "active"
        current: ArchivedEntry | None = None

        for line in lines:
            if phase == "active":
                if _ARCHIVED_HEADER_RE.match(line.strip()):
                    document.header = line
                    phase = "archived"
                    continue
                row = TableRow.parse(line)
                document.active.append(row if row is not None else line)
                continue

            if phase == "archived":
                if _SECTION_RE.match(line):
                    phase = "tail"
                    document.tail.append(line)
                    continue
                entry_match = _ENTRY_RE.match(line)
                if entry_match:
                    current = ArchivedEntry(
                        track_id=entry_match.group("track_id"),
                        title=entry_match.group("title"),
                        lines=[line],
                    )
                    document.archived.append(current)
                    continue
                if current is not None:
                    current.lines.append(line)
                    field_match = _FIELD_RE.match(line.strip())
                    if field_match:
                        current.fields[field_match.group("key").strip()] = field_match.group("value")
                    continue
                document.archived.append(line)
                continue

            document.tail.append(line)

        return document

    def lines(self) -> list[str]:
        rendered: list[str] = [item.line if isinstance(item, TableRow) else item for item in self.active]
        if self.header is not None:
            rendered.append(self.header)
        for item in self.archived:
            if isinstance(item, ArchivedEntry):
                rendered.extend(item.lines)
            else:
                rendered.append(item)
        rendered.extend(self.tail)
        return rendered

    def render(self) -> str:
        text = "\n".join(self.lines())
        return text + "\n" if self.trailing_newline and text else text

    def active_rows(self, track_id: str) -> list[TableRow]:
        return [item for item in self.active if isinstance(item, TableRow) and item.names(track_id)]

    def has_active_row(self, track_id: str) -> bool:
        return bool(self.active_rows(track_id))

    def archived_entry(self, track_id: str) -> ArchivedEntry | None:
        for item in self.archived:
            if isinstance(item, ArchivedEntry) and item.track_id == track_id:
                return item
        return None

    def needs_archive(self, track_id: str) -> bool:
        return self.has_active_row(track_id) or self.archived_entry(track_id) is None

    def _last_archived_line(self) -> str | None:
        if self.archived:
            last = self.archived[-1]
            return last.lines[-1] if isinstance(last, ArchivedEntry) else last
        return self.header

    def move_to_archived(
        self,
        *,
        track_id: str,
        title: str,
        reason: str,
        archived_on: str,
        folder: str,
    ) -> bool:
        """Drop the active rows of ``track_id`` and add its archived entry if missing.

        Returns whether the document changed.
        """

        before = len(self.active)
        self.active = [
            item for item in self.active if not (isinstance(item, TableRow) and item.names(track_id))
        ]
        changed = len(self.active) != before

        if self.archived_entry(track_id) is None:
            if self.header is None:
                last_active = self.active[-1] if self.active else None
                last_text = last_active.line if isinstance(last_active, TableRow) else last_active
                if last_text is not None and last_text.strip():
                    self.active.append("")
                self.header = ARCHIVED_HEADER
            last_line = self._last_archived_line()
            if last_line is not None and last_line.strip():
                self.archived.append("")
            self.archived.append(
                ArchivedEntry.create(
                    track_id=track_id,
                    title=title,
                    reason=reason,
                    archived_on=archived_on,
                    folder=folder,
                )
            )
            if self.tail:
                self.archived.append("")
            self.trailing_newline = True
            changed = True

        return changed


class RegistryEditor:
    """Read-modify-write access to the registry under an exclusive lock."""

    def __init__(self, store: ArtifactStore, path: Path, *, strict: bool = False) -> None:
        self._store = store
        self._path = Path(path)
        self._strict = strict

    @property
    def path(self) -> Path:
        return self._path

    @property
    def strict(self) -> bool:
        return self._strict

    def exists(self) -> bool:
        return self._store.exists(self._path)

    def require(self, track_id: str | None = None) -> bool:
        """Return whether the registry exists; in strict mode its absence is an error."""

        if self.exists():
            return True
        if self._strict:
            raise ArtifactMissingError(f"registry {self._path} does not exist", track_id=track_id)
        return False

    def read(self) -> RegistryDocument | None:
        if not self.exists():
            return None
        return RegistryDocument.parse(self._store.read_text(self._path))

    def move_to_archived(
        self,
        track_id: str,
        title: str,
        reason: str,
        archived_on: str,
        *,
        folder: str,
    ) -> EditOutcome:
        with self._store.lock(REGISTRY_LOCK):
            if not self.require(track_id):
                logger.info(
                    "Registry missing; skipping registry update",
                    extra={"track_id": track_id, "path": str(self._path)},
                )
                return EditOutcome.SKIPPED

            document = RegistryDocument.parse(self._store.read_text(self._path))
            changed = document.move_to_archived(
                track_id=track_id,
                title=title,
                reason=reason,
                archived_on=archived_on,
                folder=folder,
            )
            if not changed:
                return EditOutcome.UNCHANGED
            self._store.write_text(self._path, document.render())

        logger.info(
            "Moved track to archived section of registry",
            extra={"track_id": track_id, "path": str(self._path)},
        )
        return EditOutcome.UPDATED


__all__ = [
    "ARCHIVED_HEADER",
    "ArchivedEntry",
    "EditOutcome",
    "RegistryDocument",
    "RegistryEditor",
    "TableRow",
]
