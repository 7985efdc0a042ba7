"""Coalescing trigger scheduler: one in-flight run, at most one pending rerun."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from skillssync.sync.models import SyncState, SyncTrigger

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, run: Callable[[SyncTrigger], SyncState]) -> None:
        self._run = run
        self._lock = threading.Lock()
        self._in_flight = False
        self._pending: SyncTrigger | None = None
        self._thread: threading.Thread | None = None
        self.runs = 0
        self.last_state: SyncState | None = None
        self.last_error: Exception | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def request(self, trigger: SyncTrigger = SyncTrigger.AUTO_FILESYSTEM) -> bool:
        """Start a run in the background, or mark one pending if a run is active.

        Returns True when a new run was started.
        """
        with self._lock:
            if self._in_flight:
                self._pending = trigger
                return False
            self._in_flight = True
            self._thread = threading.Thread(
                target=self._loop, args=(trigger,), name="skillssync-sync", daemon=True
            )
            self._thread.start()
            return True

    def wait(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _loop(self, trigger: SyncTrigger) -> None:
        while True:
            try:
                self.last_state = self._run(trigger)
                self.last_error = None
            except Exception as e:
                self.last_error = e
                logger.warning(f"Scheduled sync failed ({trigger}): {e}")
            finally:
                self.runs += 1
            with self._lock:
                if self._pending is None:
                    self._in_flight = False
                    return
                trigger = self._pending
                self._pending = None
