"""Debounced polling watcher over the skill roots."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

# Packages live at most a few levels below a root; deeper changes are package content.
_FINGERPRINT_DEPTH = 3


class PollingWatcher:
    """Call back once the watched trees change and then stay quiet for `debounce_seconds`."""

    def __init__(
        self,
        paths: Callable[[], Iterable[Path]],
        *,
        poll_seconds: float = 1.0,
        debounce_seconds: float = 0.5,
    ) -> None:
        self._paths = paths
        self.poll_seconds = max(0.05, float(poll_seconds))
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self._fingerprint: dict[str, tuple[int, str]] = {}
        self._changed_at: float | None = None

    def reset(self) -> None:
        self._fingerprint = self.compute_fingerprint(self._paths())
        self._changed_at = None

    def poll(self, now: float | None = None) -> bool:
        """Take one sample. Returns True when a debounced change is due."""
        now = time.monotonic() if now is None else now
        current = self.compute_fingerprint(self._paths())
        if current != self._fingerprint:
            self._fingerprint = current
            self._changed_at = now
            return self.debounce_seconds == 0.0
        if self._changed_at is not None and now - self._changed_at >= self.debounce_seconds:
            self._changed_at = None
            return True
        return False

    def run(self, callback: Callable[[], object], stop: threading.Event) -> None:
        self.reset()
        while not stop.wait(self.poll_seconds):
            if self.poll():
                logger.info("Skill roots changed; requesting sync")
                callback()

    @staticmethod
    def compute_fingerprint(roots: Iterable[Path]) -> dict[str, tuple[int, str]]:
        out: dict[str, tuple[int, str]] = {}
        for root in roots:
            _fingerprint_dir(root, 0, out)
        return out


def _fingerprint_dir(directory: Path, depth: int, out: dict[str, tuple[int, str]]) -> None:
    try:
        entries = list(os.scandir(directory))
    except OSError:
        return
    for entry in entries:
        try:
            st = entry.stat(follow_symlinks=False)
            link = os.readlink(entry.path) if entry.is_symlink() else ""
            out[entry.path] = (st.st_mtime_ns, link)
            if depth < _FINGERPRINT_DEPTH and entry.is_dir(follow_symlinks=False):
                _fingerprint_dir(Path(entry.path), depth + 1, out)
        except OSError:
            continue
