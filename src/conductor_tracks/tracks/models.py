"""Track metadata models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

DEFAULT_ARCHIVE_REASON = "Completed"


class TrackStatus(str, Enum):
    """Lifecycle state of a track. ``ARCHIVED`` is terminal."""

    ACTIVE = "active"
    ARCHIVED = "archived"


def normalize_reason(reason: str | None) -> str:
    cleaned = " ".join((reason or "").split())
    return cleaned or DEFAULT_ARCHIVE_REASON


class TrackMetadata(BaseModel):
    """Contents of a track's ``metadata.json``.

    Keys this model does not know about are kept and written back unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = Field(..., description="Human-readable label set when the track was created.")
    status: str = Field(
        default=TrackStatus.ACTIVE.value,
        description="Raw status string; any value other than 'archived' is an active state.",
    )
    archived: bool = Field(default=False, description="Mirror of status for older readers.")
    archived_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("archivedAt", "archived_at"),
        serialization_alias="archivedAt",
    )
    archive_reason: str | None = Field(
        default=None,
        validation_alias=AliasChoices("archiveReason", "archive_reason"),
        serialization_alias="archiveReason",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _require_text_title(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("title must be a string")
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> str:
        if value is None:
            return TrackStatus.ACTIVE.value
        if isinstance(value, TrackStatus):
            return value.value
        if not isinstance(value, str):
            raise ValueError("status must be a string")
        return value.strip() or TrackStatus.ACTIVE.value

    @field_serializer("archived_at")
    def _serialize_archived_at(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    @property
    def lifecycle(self) -> TrackStatus:
        if self.status == TrackStatus.ARCHIVED.value:
            return TrackStatus.ARCHIVED
        return TrackStatus.ACTIVE

    @property
    def is_archived(self) -> bool:
        return self.lifecycle is TrackStatus.ARCHIVED

    @property
    def is_complete_archive(self) -> bool:
        """Archived status, mirrored flag, and timestamp are all in place."""

        return self.is_archived and self.archived and self.archived_at is not None

    def mark_archived(self, *, reason: str | None, archived_at: datetime) -> "TrackMetadata":
        """Return a copy in the archived state; an already archived record is returned as is."""

        if self.is_complete_archive:
            return self
        was_archived = self.is_archived
        return self.model_copy(
            update={
                "status": TrackStatus.ARCHIVED.value,
                "archived": True,
                "archived_at": (self.archived_at if was_archived else None) or archived_at,
                "archive_reason": (self.archive_reason if was_archived else None) or normalize_reason(reason),
            }
        )

    def to_record(self) -> dict[str, Any]:
        record = self.model_dump(by_alias=True)
        for key in ("archivedAt", "archiveReason"):
            if record.get(key) is None:
                record.pop(key, None)
        return record


@dataclass(frozen=True, slots=True)
class Track:
    """A track as found on disk: its id, its record, and the directory holding it."""

    id: str
    metadata: TrackMetadata
    location: Path
    archived_location: bool

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def status(self) -> TrackStatus:
        return self.metadata.lifecycle


__all__ = [
    "DEFAULT_ARCHIVE_REASON",
    "Track",
    "TrackMetadata",
    "TrackStatus",
    "normalize_reason",
]
