"""Tests for sync/preferences.py — settings document and sync options."""

from __future__ import annotations

import json
from pathlib import Path

from skillssync.sync.preferences import PreferencesStore, SyncPreferences, normalize_roots


class TestNormalizeRoots:
    def test_drops_relative_and_duplicates(self):
        assert normalize_roots(["/a", "rel", " /a ", "", "/b"]) == ["/a", "/b"]

    def test_expands_user(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert normalize_roots(["~/code"]) == [str(tmp_path / "code")]


class TestSyncPreferences:
    def test_defaults(self):
        prefs = SyncPreferences()
        assert prefs.version == 1
        assert not prefs.auto_migrate_to_canonical_source
        assert prefs.workspace_discovery_roots == []

    def test_null_roots_become_empty(self):
        prefs = SyncPreferences.model_validate({"workspace_discovery_roots": None})
        assert prefs.workspace_discovery_roots == []

    def test_to_options(self):
        prefs = SyncPreferences(
            auto_migrate_to_canonical_source=True,
            workspace_discovery_roots=["/code", "relative"],
        )
        options = prefs.to_options()
        assert options.auto_migrate
        assert options.discovery_roots == (Path("/code"),)


class TestPreferencesStore:
    def test_missing_file_gives_defaults(self, env):
        assert PreferencesStore(env).load() == SyncPreferences()

    def test_corrupt_file_gives_defaults(self, env):
        env.preferences_path.parent.mkdir(parents=True)
        env.preferences_path.write_text("[]")
        assert PreferencesStore(env).load() == SyncPreferences()

    def test_save_bumps_version_and_normalizes(self, env):
        store = PreferencesStore(env)
        saved = store.save(
            SyncPreferences(
                workspace_discovery_roots=["/x", "/x", "rel"],
                ui_state={"tab": "skills"},
            )
        )
        assert saved.version == 2
        assert saved.workspace_discovery_roots == ["/x"]
        raw = json.loads(env.preferences_path.read_text())
        assert raw["ui_state"] == {"tab": "skills"}
        assert store.load() == saved

    def test_options_reflect_saved_values(self, env):
        store = PreferencesStore(env)
        store.save(SyncPreferences(auto_migrate_to_canonical_source=True))
        assert store.options().auto_migrate
