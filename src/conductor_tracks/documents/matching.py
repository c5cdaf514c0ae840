"""Delimiter-aware track id matching for markdown documents."""

from __future__ import annotations

import re

_ID_CHARS = "A-Za-z0-9_.-"
_LINK = re.compile(r"\[(?P<text>[^\]]*)\]\((?P<target>[^)\s]*)(?:\s+\"[^\"]*\")?\)")
_WRAPPERS = ("**", "__", "`", "*", "_")


def reference_pattern(track_id: str) -> re.Pattern[str]:
    """Match ``track_id`` only where it is not part of a longer id.

    A following ``.`` is accepted when it ends a sentence, so ``foo.`` names
    ``foo`` while ``foo.v2`` does not.
    """

    return re.compile(
        rf"(?<![{_ID_CHARS}]){re.escape(track_id)}(?![A-Za-z0-9_-])(?!\.[A-Za-z0-9_])"
    )


def references_track(text: str, track_id: str) -> bool:
    return reference_pattern(track_id).search(text) is not None


def _unwrap(value: str) -> str:
    value = value.strip()
    changed = True
    while changed:
        changed = False
        for marker in _WRAPPERS:
            if len(value) > 2 * len(marker) and value.startswith(marker) and value.endswith(marker):
                value = value[len(marker) : -len(marker)].strip()
                changed = True
    return value


def _target_segments(target: str) -> list[str]:
    path = re.split(r"[?#]", target, maxsplit=1)[0]
    return [segment for segment in path.split("/") if segment not in {"", ".", ".."}]


def cell_tokens(cell: str) -> set[str]:
    """Return every whole token a table cell can name a track by.

    That is the unwrapped cell text, the text of each link inside it, and
    each path segment of each link target.
    """

    value = _unwrap(cell)
    tokens = {value} if value else set()
    for match in _LINK.finditer(value):
        text = _unwrap(match.group("text"))
        if text:
            tokens.add(text)
        tokens.update(_target_segments(match.group("target")))
    return tokens


def cell_names_track(cell: str, track_id: str) -> bool:
    """Whether a table cell names ``track_id`` as a whole id, alone or among other text."""

    if references_track(_unwrap(cell), track_id):
        return True
    return track_id in cell_tokens(cell)


__all__ = ["cell_names_track", "cell_tokens", "reference_pattern", "references_track"]
