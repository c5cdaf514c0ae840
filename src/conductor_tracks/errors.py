"""Error taxonomy for track lifecycle operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .orchestrator import ArchiveResult


class ConductorError(RuntimeError):
    """Base class for every error raised by the archival engine."""

    kind = "error"
    exit_code = 1

    def __init__(self, message: str, *, track_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.track_id = track_id

    def describe(self) -> str:
        """Return a single-line diagnostic naming the error kind and the track."""

        subject = f" track '{self.track_id}'" if self.track_id else ""
        text = " ".join(self.message.split())
        return f"error[{self.kind}]{subject}: {text}"


class UsageError(ConductorError, ValueError):
    """Raised for missing or malformed arguments, before any state is read."""

    kind = "usage"
    exit_code = 2


class NotFoundError(ConductorError):
    """Raised when a track has no metadata record under either root."""

    kind = "not-found"


class MetadataParseError(ConductorError):
    """Raised when a metadata record exists but cannot be interpreted."""

    kind = "metadata-parse"


class SplitStateError(ConductorError):
    """Raised when metadata and the file tree disagree in a way that cannot be healed."""

    kind = "split-state"


class AlreadyAtDestinationError(ConductorError):
    """Raised when a relocation is asked to move a path onto itself."""

    kind = "already-at-destination"


class ArtifactIOError(ConductorError):
    """Raised when an artifact is unreadable or unwritable for reasons other than absence."""

    kind = "io"

    def __init__(self, message: str, *, track_id: str | None = None, step: str | None = None) -> None:
        super().__init__(message, track_id=track_id)
        self.step = step


class ArtifactMissingError(ConductorError):
    """Raised in strict mode when the registry or index artifact is absent."""

    kind = "artifact-missing"


class AuditError(ConductorError):
    """Raised when the audit log rejects a record after the archival was applied.

    The state changes stay in place; ``result`` describes what was applied.
    """

    kind = "audit"
    exit_code = 3

    def __init__(
        self,
        message: str,
        *,
        track_id: str | None = None,
        result: "ArchiveResult | None" = None,
    ) -> None:
        super().__init__(message, track_id=track_id)
        self.result = result


__all__ = [
    "AlreadyAtDestinationError",
    "ArtifactIOError",
    "ArtifactMissingError",
    "AuditError",
    "ConductorError",
    "MetadataParseError",
    "NotFoundError",
    "SplitStateError",
    "UsageError",
]
