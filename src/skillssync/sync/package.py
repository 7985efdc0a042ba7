"""Package reader: package kind, manifest lookup, frontmatter and hashing."""

from __future__ import annotations

import hashlib
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from skillssync.sync.config import MANIFEST_NAME
from skillssync.sync.fsutil import lexists, read_link
from skillssync.sync.models import PackageKind

_FENCE = "---"
_YAML_SPECIAL_START = tuple("[]{}\"'#&*!|>%@`")


@dataclass
class Frontmatter:
    present: bool = False
    fields: dict[str, str] = field(default_factory=dict)
    # (1-based line number in the manifest, raw line) for every line inside the block
    lines: list[tuple[int, str]] = field(default_factory=list)
    body: str = ""
    body_start_line: int = 1

    def get(self, key: str) -> str | None:
        value = self.fields.get(key.lower())
        return value if value else None


@dataclass(frozen=True)
class ManifestInfo:
    path: Path
    is_symlink: bool
    target: Path | None
    healthy: bool


def detect_kind(path: Path) -> PackageKind | None:
    """Directory holding a manifest, a single markdown file, or not a package."""
    if path.is_dir():
        return PackageKind.DIRECTORY if lexists(path / MANIFEST_NAME) else None
    if path.is_file() and path.suffix.lower() == ".md":
        return PackageKind.FILE
    return None


def guess_kind(path: Path) -> PackageKind:
    """Kind of a package whose path cannot be inspected (e.g. a dangling link)."""
    return PackageKind.FILE if path.suffix.lower() == ".md" else PackageKind.DIRECTORY


def manifest_path(path: Path, kind: PackageKind) -> Path:
    return path / MANIFEST_NAME if kind == PackageKind.DIRECTORY else path


def package_root(path: Path, kind: PackageKind) -> Path:
    """Directory that relative references inside the manifest resolve against."""
    return path if kind == PackageKind.DIRECTORY else path.parent


def slot_name(skill_key: str, kind: PackageKind) -> str:
    return f"{skill_key}.md" if kind == PackageKind.FILE else skill_key


def inspect_manifest(path: Path, kind: PackageKind) -> ManifestInfo:
    manifest = manifest_path(path, kind)
    if manifest.is_symlink():
        target = read_link(manifest)
        return ManifestInfo(manifest, True, target, target.is_file())
    return ManifestInfo(manifest, False, None, manifest.is_file())


def parse_frontmatter(text: str) -> Frontmatter:
    """Split a `---`-delimited key: value block from the body.

    Values are stripped of surrounding quotes; keys are lowercased. The first
    occurrence of a key wins. Text without a closed block is all body.
    """
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or lines[0].strip() != _FENCE:
        return Frontmatter(body="\n".join(lines))
    end = next((i for i in range(1, len(lines)) if lines[i].strip() == _FENCE), None)
    if end is None:
        return Frontmatter(body="\n".join(lines))

    fm = Frontmatter(present=True, body_start_line=end + 2)
    for index in range(1, end):
        raw = lines[index]
        fm.lines.append((index + 1, raw))
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        if key and key not in fm.fields:
            fm.fields[key] = value.strip().strip('"').strip("'")
    fm.body = "\n".join(lines[end + 1 :])
    return fm


def first_heading(body: str) -> str | None:
    for line in body.split("\n"):
        stripped = line.strip()
        if stripped.startswith("# "):
            heading = stripped[2:].strip()
            if heading:
                return heading
    return None


def display_title(fm: Frontmatter) -> str | None:
    return fm.get("title") or fm.get("name") or first_heading(fm.body)


def read_title(path: Path, kind: PackageKind) -> str | None:
    try:
        text = manifest_path(path, kind).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    return display_title(parse_frontmatter(text))


def normalized_skill_key(title: str) -> str:
    """Lowercase ASCII alphanumeric runs joined by single dashes."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def _yaml_scalar(value: str) -> str:
    if ": " in value or value.endswith(":") or value.startswith(_YAML_SPECIAL_START):
        return json.dumps(value, ensure_ascii=False)
    return value


def updated_title(text: str, title: str) -> str:
    """Return manifest text with its frontmatter title set to title.

    Replaces the first `title:` line, appends one to an existing block, or
    prepends a minimal block. Other fields and the body are kept as-is.
    """
    entry = f"title: {_yaml_scalar(title)}"
    lines = text.replace("\r\n", "\n").split("\n")
    if lines and lines[0].strip() == _FENCE:
        end = next((i for i in range(1, len(lines)) if lines[i].strip() == _FENCE), None)
        if end is not None:
            for index in range(1, end):
                key, sep, _ = lines[index].partition(":")
                if sep and key.strip().lower() == "title":
                    lines[index] = entry
                    return "\n".join(lines)
            lines.insert(end, entry)
            return "\n".join(lines)
    return f"{_FENCE}\n{entry}\n{_FENCE}\n\n" + "\n".join(lines)


def hash_package(path: Path, kind: PackageKind) -> str:
    """sha256 over every file of the package in sorted relative-path order."""
    digest = hashlib.sha256()
    if kind == PackageKind.FILE:
        files = [(path.name, path)]
    else:
        files = []
        for dirpath, dirnames, filenames in os.walk(path, followlinks=False):
            base = Path(dirpath)
            for name in filenames + [d for d in dirnames if (base / d).is_symlink()]:
                entry = base / name
                files.append((entry.relative_to(path).as_posix(), entry))
        files.sort()

    if not files:
        digest.update(b"<empty>")
    for rel, entry in files:
        digest.update(rel.encode())
        digest.update(b"\0")
        digest.update(_file_bytes(entry))
        digest.update(b"\0")
    return digest.hexdigest()


def _file_bytes(entry: Path) -> bytes:
    if entry.is_symlink():
        if not entry.exists():
            return b"<broken-symlink>"
        if entry.is_dir():
            return f"<symlink-dir:{read_link(entry)}>".encode()
    return entry.read_bytes()
