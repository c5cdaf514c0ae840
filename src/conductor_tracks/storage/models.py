"""Data models for persisted archive events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class ArchiveEventRecord:
    track_id: str
    title: str
    reason: str
    archived_at: datetime
    artifacts: list[str]
    recorded_at: datetime
    metadata: dict[str, Any]


__all__ = ["ArchiveEventRecord"]
