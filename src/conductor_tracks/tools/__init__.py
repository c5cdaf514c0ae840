"""Tool registration for the conductor tracks MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastmcp import Context, FastMCP

from ..errors import AuditError
from ..layout import validate_track_id
from ..orchestrator import ArchiveOrchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    archive_track: Any
    track_state: Any
    verify_tracks: Any
    archive_history: list[dict[str, Any]]


def register_tools(server: FastMCP, *, orchestrator: ArchiveOrchestrator) -> ToolHandles:
    """Register the track lifecycle tools on the server."""

    archive_history: list[dict[str, Any]] = []

    def _archive_track(
        track_id: str,
        reason: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Archive a track, or finish an interrupted archive of it."""

        track_id = validate_track_id(track_id)
        audit_error: str | None = None
        try:
            result = orchestrator.archive(track_id, reason)
        except AuditError as exc:
            if exc.result is None:
                raise
            result = exc.result
            audit_error = exc.describe()

        payload = result.to_dict()
        payload["noop"] = result.noop
        payload["audit_error"] = audit_error
        archive_history.append(
            {
                "track_id": track_id,
                "applied": payload["applied"],
                "at": datetime.now(timezone.utc).isoformat(),
                "audit_error": audit_error,
            }
        )

        _emit_log(
            context,
            "warning" if audit_error else "info",
            "Archive requested",
            extra={"track_id": track_id, "applied": payload["applied"], "noop": result.noop},
        )
        return payload

    def _track_state(track_id: str, context: Context | None = None) -> dict[str, Any]:
        """Report the derived lifecycle state of a track."""

        state = orchestrator.inspect(validate_track_id(track_id))
        _emit_log(context, "debug", "Inspected track", extra={"track_id": state.track_id})
        return state.to_dict()

    def _verify_tracks(
        track_ids: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Check tracks against the lifecycle invariant."""

        ids = [validate_track_id(track_id) for track_id in track_ids] if track_ids else None
        states = orchestrator.verify(ids)
        inconsistent = [state.track_id for state in states if not state.consistent]
        _emit_log(
            context,
            "info",
            "Verified tracks",
            extra={"count": len(states), "inconsistent": len(inconsistent)},
        )
        return {
            "consistent": not inconsistent,
            "inconsistent": inconsistent,
            "tracks": [state.to_dict() for state in states],
        }

    tool_archive = server.tool(
        name="archive_track",
        description=(
            "Archive a conductor track: mark its metadata archived, move it under "
            "tracks/_archive, move its registry row to the archived section, and drop "
            "it from the index. Safe to repeat; re-running finishes an interrupted archive."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Archival is one-way; confirm the track id before calling",
            }
        },
    )(_archive_track)

    tool_state = server.tool(
        name="track_state",
        description="Show a track's status, location, registry/index membership and remaining archive steps.",
    )(_track_state)

    tool_verify = server.tool(
        name="verify_tracks",
        description="List tracks whose metadata, directory, registry and index disagree.",
    )(_verify_tracks)

    return ToolHandles(
        archive_track=tool_archive,
        track_state=tool_state,
        verify_tracks=tool_verify,
        archive_history=archive_history,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
