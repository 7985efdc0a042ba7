"""Tests for sync/watcher.py — debounced polling over skill roots."""

from __future__ import annotations

import threading

from skillssync.sync.watcher import PollingWatcher


class TestPoll:
    def test_change_fires_once_after_quiet_window(self, tmp_path):
        root = tmp_path / "skills"
        root.mkdir()
        watcher = PollingWatcher(lambda: [root], debounce_seconds=1.0)
        watcher.reset()
        assert not watcher.poll(now=0.0)

        (root / "demo").mkdir()
        assert not watcher.poll(now=10.0)
        assert not watcher.poll(now=10.5)
        assert watcher.poll(now=11.0)
        assert not watcher.poll(now=12.0)

    def test_new_change_restarts_window(self, tmp_path):
        root = tmp_path / "skills"
        root.mkdir()
        watcher = PollingWatcher(lambda: [root], debounce_seconds=1.0)
        watcher.reset()
        (root / "a").mkdir()
        assert not watcher.poll(now=0.0)
        (root / "b").mkdir()
        assert not watcher.poll(now=0.9)
        assert not watcher.poll(now=1.5)
        assert watcher.poll(now=2.0)

    def test_zero_debounce_fires_immediately(self, tmp_path):
        root = tmp_path / "skills"
        root.mkdir()
        watcher = PollingWatcher(lambda: [root], debounce_seconds=0.0)
        watcher.reset()
        (root / "demo.md").write_text("x")
        assert watcher.poll(now=0.0)

    def test_missing_roots_are_quiet(self, tmp_path):
        watcher = PollingWatcher(lambda: [tmp_path / "absent"], debounce_seconds=0.0)
        watcher.reset()
        assert not watcher.poll(now=0.0)


class TestFingerprint:
    def test_records_symlink_targets(self, tmp_path):
        (tmp_path / "real").mkdir()
        (tmp_path / "link").symlink_to(tmp_path / "real")
        prints = PollingWatcher.compute_fingerprint([tmp_path])
        assert prints[str(tmp_path / "link")][1] == str(tmp_path / "real")
        assert prints[str(tmp_path / "real")][1] == ""

    def test_includes_nested_entries(self, tmp_path):
        (tmp_path / "group" / "demo").mkdir(parents=True)
        (tmp_path / "group" / "demo" / "SKILL.md").write_text("x")
        prints = PollingWatcher.compute_fingerprint([tmp_path])
        assert str(tmp_path / "group" / "demo" / "SKILL.md") in prints


class TestRun:
    def test_returns_when_stopped(self, tmp_path):
        calls: list[int] = []
        stop = threading.Event()
        stop.set()
        watcher = PollingWatcher(lambda: [tmp_path], poll_seconds=0.05)
        watcher.run(lambda: calls.append(1), stop)
        assert calls == []
