"""Tests for sync/audit.py — bounded audit log."""

from __future__ import annotations

from skillssync.sync.audit import AuditEvent, AuditStatus, AuditStore


class TestAuditStore:
    def test_empty_without_file(self, env):
        assert AuditStore(env).list_events() == []

    def test_record_and_list_newest_first(self, env):
        store = AuditStore(env)
        store.record("sync", AuditStatus.SUCCESS, "first")
        store.record("delete", AuditStatus.BLOCKED, "second", paths=["/a"])
        events = store.list_events()
        assert [e.summary for e in events] == ["second", "first"]
        assert events[0].paths == ["/a"]

    def test_filters(self, env):
        store = AuditStore(env)
        store.record("sync", AuditStatus.SUCCESS, "ok")
        store.record("sync", AuditStatus.FAILED, "bad")
        store.record("archive", AuditStatus.SUCCESS, "archived")
        assert [e.summary for e in store.list_events(status=AuditStatus.SUCCESS)] == [
            "archived",
            "ok",
        ]
        assert [e.summary for e in store.list_events(action="sync", limit=1)] == ["bad"]

    def test_keeps_only_newest_events(self, env):
        store = AuditStore(env, limit=3)
        for i in range(5):
            store.append(AuditEvent(action="sync", status=AuditStatus.SUCCESS, summary=str(i)))
        assert [e.summary for e in store.list_events()] == ["4", "3", "2"]

    def test_corrupt_log_starts_fresh(self, env):
        env.audit_path.parent.mkdir(parents=True)
        env.audit_path.write_text("garbage")
        store = AuditStore(env)
        store.record("sync", AuditStatus.SUCCESS, "after")
        assert [e.summary for e in store.list_events()] == ["after"]
