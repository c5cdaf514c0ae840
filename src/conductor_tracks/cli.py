"""Command line interface for the conductor track lifecycle."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from .config import ConductorSettings, configure_logging, describe_settings_error
from .errors import AuditError, ConductorError, UsageError
from .layout import validate_track_id
from .orchestrator import ArchiveOrchestrator


def load_settings(args: argparse.Namespace) -> ConductorSettings:
    """Environment settings with command line overrides applied."""

    try:
        settings = ConductorSettings()
    except ValidationError as exc:
        raise UsageError(describe_settings_error(exc)) from exc
    overrides: dict[str, object] = {}
    if args.root:
        overrides["conductor_root"] = Path(args.root)
    if args.repo_root:
        overrides["repo_root"] = Path(args.repo_root)
    if args.audit:
        overrides["audit_backend"] = args.audit
    if args.strict_registry:
        overrides["strict_registry"] = True
    if args.strict_index:
        overrides["strict_index"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings.resolved()


def build_orchestrator(settings: ConductorSettings) -> ArchiveOrchestrator:
    return ArchiveOrchestrator.from_settings(settings)


def cmd_archive(args: argparse.Namespace, orchestrator: ArchiveOrchestrator) -> int:
    try:
        result = orchestrator.archive(args.track_id, args.reason)
    except AuditError as exc:
        if exc.result is not None:
            print(exc.result.describe())
        print(exc.describe(), file=sys.stderr)
        return exc.exit_code

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.describe())
    return 0


def cmd_reaudit(args: argparse.Namespace, orchestrator: ArchiveOrchestrator) -> int:
    try:
        result = orchestrator.reaudit(args.track_id)
    except AuditError as exc:
        print(exc.describe(), file=sys.stderr)
        return exc.exit_code
    print(result.describe())
    return 0


def cmd_show(args: argparse.Namespace, orchestrator: ArchiveOrchestrator) -> int:
    state = orchestrator.inspect(args.track_id)
    print(json.dumps(state.to_dict(), indent=2))
    return 0


def cmd_verify(args: argparse.Namespace, orchestrator: ArchiveOrchestrator) -> int:
    states = orchestrator.verify(args.track_ids or None)
    if args.json:
        print(json.dumps([state.to_dict() for state in states], indent=2))
    else:
        for state in states:
            if state.consistent:
                status = state.status.value if state.status else "unknown"
                print(f"{state.track_id} [ok] {status}")
                continue
            for violation in state.violations:
                print(f"{state.track_id} [violation] {violation}")
    return 0 if all(state.consistent for state in states) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conductor-tracks",
        description="Archive conductor tracks and check registry/index consistency",
    )
    parser.add_argument("--root", help="Conductor root (default: $CONDUCTOR_ROOT or .agent/conductor)")
    parser.add_argument("--repo-root", help="Git repository used by the git audit log")
    parser.add_argument(
        "--audit",
        choices=["git", "chroma", "none"],
        default=None,
        help="Audit log backend (default: $CONDUCTOR_AUDIT_BACKEND or git)",
    )
    parser.add_argument(
        "--strict-registry",
        action="store_true",
        help="Fail instead of skipping when tracks.md is missing",
    )
    parser.add_argument(
        "--strict-index",
        action="store_true",
        help="Fail instead of skipping when index.md is missing",
    )
    parser.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        type=str.upper,
        default=None,
    )
    sub = parser.add_subparsers(dest="cmd")

    p_archive = sub.add_parser("archive", help="Archive a track")
    p_archive.add_argument("track_id")
    p_archive.add_argument("reason", nargs="?", default=None, help="Archive reason (default: Completed)")
    p_archive.add_argument("--json", action="store_true", help="Output JSON")
    p_archive.set_defaults(func=cmd_archive)

    p_reaudit = sub.add_parser(
        "reaudit",
        help="Write the audit entry of an already archived track (after a failed audit step)",
    )
    p_reaudit.add_argument("track_id")
    p_reaudit.set_defaults(func=cmd_reaudit)

    p_show = sub.add_parser("show", help="Show the derived state of a track")
    p_show.add_argument("track_id")
    p_show.set_defaults(func=cmd_show)

    p_verify = sub.add_parser("verify", help="Check tracks against the lifecycle invariant")
    p_verify.add_argument("track_ids", nargs="*")
    p_verify.add_argument("--json", action="store_true", help="Output JSON")
    p_verify.set_defaults(func=cmd_verify)

    return parser


def run(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    try:
        if getattr(args, "track_id", None) is not None:
            args.track_id = validate_track_id(args.track_id)
        for track_id in getattr(args, "track_ids", None) or []:
            validate_track_id(track_id)
        settings = load_settings(args)
    except ConductorError as exc:
        print(exc.describe(), file=sys.stderr)
        return exc.exit_code

    configure_logging(settings.log_level)
    try:
        return args.func(args, build_orchestrator(settings))
    except ConductorError as exc:
        print(exc.describe(), file=sys.stderr)
        return exc.exit_code


def main(argv: list[str] | None = None) -> None:
    exit_code = run(argv)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
