"""Small filesystem helpers shared by the reconciler, stores and mutations."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from skillssync.sync.config import PROTECTED_SEGMENT


def atomic_write(path: Path, content: str) -> None:
    """Write content to path atomically, creating parent dirs as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    closed = False
    try:
        os.write(fd, content.encode())
        os.close(fd)
        closed = True
        os.replace(tmp, path)
    except BaseException:
        if not closed:
            os.close(fd)
        os.unlink(tmp)
        raise


def lexists(path: Path) -> bool:
    """True for anything at path, including a dangling symlink."""
    return os.path.lexists(path)


def read_link(path: Path) -> Path:
    """Absolute, normalized target of the symlink at path."""
    target = Path(os.readlink(path))
    if not target.is_absolute():
        target = path.parent / target
    return Path(os.path.normpath(target))


def normalize(path: Path | str) -> Path:
    """Collapse `..` and resolve the parent chain without following the leaf."""
    flat = Path(os.path.normpath(os.path.abspath(path)))
    if flat.parent == flat:
        return flat
    return Path(os.path.realpath(flat.parent)) / flat.name


def is_within(path: Path, root: Path) -> bool:
    candidate = normalize(path)
    # A root that is itself a symlink is matched through its real location too.
    for base in {normalize(root), Path(os.path.realpath(root))}:
        if candidate == base or base in candidate.parents:
            return True
    return False


def has_protected_segment(path: Path | str) -> bool:
    return PROTECTED_SEGMENT in Path(os.path.normpath(path)).parts


def remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def move_path(source: Path, destination: Path) -> None:
    """Move source to destination, across filesystems if needed."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(destination))


def unique_destination(directory: Path, name: str) -> Path:
    """`directory/name`, or `name.1`, `name.2`, ... when taken."""
    candidate = directory / name
    index = 1
    while lexists(candidate):
        candidate = directory / f"{name}.{index}"
        index += 1
    return candidate
