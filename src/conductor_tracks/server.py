"""FastMCP server bootstrap for conductor tracks."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import ConductorSettings, configure_logging, get_settings
from .orchestrator import ArchiveOrchestrator
from .tools import register_tools


def create_server(
    settings: Optional[ConductorSettings] = None,
    orchestrator: ArchiveOrchestrator | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the track lifecycle tools."""

    settings = settings or get_settings()
    orchestrator = orchestrator or ArchiveOrchestrator.from_settings(settings)

    server = FastMCP(
        name="Conductor Tracks",
        version=__version__,
        instructions=(
            "Manages the lifecycle of conductor tracks. Use archive_track to retire a "
            "finished track, track_state to see where a track stands, and verify_tracks "
            "to find tracks whose metadata, folders, registry and index disagree."
        ),
    )

    handles = register_tools(server, orchestrator=orchestrator)

    @server.resource(
        "resource://conductor/status",
        name="conductor_status",
        title="Conductor Tracks Status",
        description="Track counts and invariant health for the configured conductor root.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing track state."""

        states = orchestrator.verify()
        status_counts: dict[str, int] = {}
        for state in states:
            status = state.status.value if state.status else "unknown"
            status_counts[status] = status_counts.get(status, 0) + 1

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "conductor_root": str(orchestrator.layout.root),
            "audit_backend": settings.audit_backend,
            "tracks": {
                "count": len(states),
                "status_counts": status_counts,
                "inconsistent": [state.track_id for state in states if not state.consistent],
            },
            "recent_archives": handles.archive_history[-5:],
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the conductor tracks MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching conductor tracks MCP server",
        extra={
            "version": __version__,
            "conductor_root": str(settings.conductor_root),
            "audit_backend": settings.audit_backend,
        },
    )
    server.run()


if __name__ == "__main__":
    main()
