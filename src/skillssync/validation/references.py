"""Local file references inside a skill manifest."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_MARKDOWN_LINK = re.compile(r"\[[^\]]+\]\(([^)]+)\)")
_BACKTICK_PATH = re.compile(r"`((?:resources|references|scripts|assets)/[^`]+)`")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_OPEN_COMMAND = re.compile(r"\bopen\s+([A-Za-z0-9_./-]+)")
_EXTENSION = re.compile(r"\.[A-Za-z0-9]+$")
_SKIPPED_SCHEMES = ("#", "mailto:")


@dataclass(frozen=True)
class Reference:
    path: str
    line: int


def _candidates(lines: list[str], pattern: re.Pattern[str]) -> list[Reference]:
    hits: list[Reference] = []
    for number, text in enumerate(lines, start=1):
        for match in pattern.finditer(text):
            hits.append(Reference(match.group(1), number))
    return hits


def _fence_marker(stripped: str) -> str | None:
    if not stripped or stripped[0] not in "`~":
        return None
    marker = stripped[0]
    run = len(stripped) - len(stripped.lstrip(marker))
    return marker if run >= 3 else None


def code_contexts(lines: list[str]) -> list[Reference]:
    """Fenced-block lines and inline code spans, with their line numbers."""
    contexts: list[Reference] = []
    fence: str | None = None
    for number, text in enumerate(lines, start=1):
        marker = _fence_marker(text.strip())
        if marker is not None:
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
            continue
        if fence is not None:
            contexts.append(Reference(text, number))
            continue
        for match in _INLINE_CODE.finditer(text):
            contexts.append(Reference(match.group(1), number))
    return contexts


def _is_path_like(candidate: str) -> bool:
    return "/" in candidate or bool(_EXTENSION.search(candidate))


def _open_commands(lines: list[str]) -> list[Reference]:
    hits: list[Reference] = []
    for context in code_contexts(lines):
        for match in _OPEN_COMMAND.finditer(context.path):
            if _is_path_like(match.group(1)):
                hits.append(Reference(match.group(1), context.line))
    return hits


def normalize_reference(value: str) -> str | None:
    """Package-relative path for a reference, or None for anything non-local."""
    candidate = value.strip().strip("\"'`<>")
    candidate = candidate.rstrip(".,;:")
    if not candidate or candidate.startswith(_SKIPPED_SCHEMES):
        return None
    if candidate.startswith("/") or "://" in candidate:
        return None
    candidate = candidate.split("#", 1)[0]
    if candidate.startswith("./"):
        candidate = candidate[2:]
    return candidate or None


def find_references(text: str) -> list[Reference]:
    lines = text.replace("\r\n", "\n").split("\n")
    return (
        _candidates(lines, _MARKDOWN_LINK)
        + _candidates(lines, _BACKTICK_PATH)
        + _open_commands(lines)
    )


def broken_references(text: str, root: Path) -> list[Reference]:
    """Distinct missing paths, earliest line first-seen, sorted by path."""
    missing: dict[str, int] = {}
    for ref in find_references(text):
        path = normalize_reference(ref.path)
        if path is None or (root / path).exists():
            continue
        if path not in missing or ref.line < missing[path]:
            missing[path] = ref.line
    return [Reference(path, line) for path, line in sorted(missing.items())]
