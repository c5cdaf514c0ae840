"""Conductor tracks diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from pydantic import ValidationError

from conductor_tracks.config import ConductorSettings, describe_settings_error, get_settings
from conductor_tracks.storage import ChromaStore, ChromaUnavailableError


def load_store(settings: ConductorSettings) -> ChromaStore:
    try:
        return ChromaStore(settings.chroma_persist_path)
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)


def cmd_archives(args: argparse.Namespace) -> None:
    settings = get_settings()
    store = load_store(settings)
    try:
        records = store.list_archives(track_id=args.track_id)
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)

    records.sort(key=lambda record: record.recorded_at)
    if args.limit is not None and args.limit > 0:
        records = records[-args.limit :]

    payload = [
        {
            "track_id": record.track_id,
            "title": record.title,
            "reason": record.reason,
            "archived_at": record.archived_at.isoformat(),
            "recorded_at": record.recorded_at.isoformat(),
            "artifacts": record.artifacts,
        }
        for record in records
    ]
    print(json.dumps(payload, indent=2))


def cmd_reasons(args: argparse.Namespace) -> None:
    settings = get_settings()
    store = load_store(settings)
    try:
        records = store.list_archives()
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)

    counts: dict[str, int] = {}
    for record in records:
        counts[record.reason] = counts.get(record.reason, 0) + 1
    print(json.dumps({"archives_total": len(records), "reason_counts": counts}, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Conductor tracks diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_archives = sub.add_parser("archives", help="List archive events recorded in Chroma")
    p_archives.add_argument("--track-id")
    p_archives.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N archive events",
    )
    p_archives.set_defaults(func=cmd_archives)

    p_reasons = sub.add_parser("reasons", help="Count archive events by reason")
    p_reasons.set_defaults(func=cmd_reasons)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    try:
        args.func(args)
    except ValidationError as exc:
        print(describe_settings_error(exc))
        raise SystemExit(2)


if __name__ == "__main__":
    main()
