"""Tests for sync/scheduler.py — coalescing of overlapping sync requests."""

from __future__ import annotations

import threading

from skillssync.sync.models import SyncState, SyncTrigger
from skillssync.sync.scheduler import SyncScheduler


class TestSyncScheduler:
    def test_overlapping_requests_coalesce_into_one_rerun(self):
        calls: list[SyncTrigger] = []
        started = threading.Event()
        release = threading.Event()

        def run(trigger: SyncTrigger) -> SyncState:
            calls.append(trigger)
            if len(calls) == 1:
                started.set()
                release.wait(5)
            return SyncState()

        scheduler = SyncScheduler(run)
        assert scheduler.request(SyncTrigger.MANUAL)
        assert started.wait(5)
        assert scheduler.in_flight
        assert not scheduler.request()
        assert not scheduler.request()
        release.set()
        scheduler.wait(5)

        assert calls == [SyncTrigger.MANUAL, SyncTrigger.AUTO_FILESYSTEM]
        assert scheduler.runs == 2
        assert not scheduler.in_flight
        assert scheduler.last_state is not None

    def test_failure_is_recorded_and_scheduler_recovers(self):
        outcomes = [RuntimeError("boom"), None]

        def run(trigger: SyncTrigger) -> SyncState:
            outcome = outcomes.pop(0)
            if outcome is not None:
                raise outcome
            return SyncState()

        scheduler = SyncScheduler(run)
        assert scheduler.request(SyncTrigger.MANUAL)
        scheduler.wait(5)
        assert isinstance(scheduler.last_error, RuntimeError)

        assert scheduler.request(SyncTrigger.MANUAL)
        scheduler.wait(5)
        assert scheduler.last_error is None
        assert scheduler.runs == 2
