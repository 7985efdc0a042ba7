"""Tests for sync/state_store.py and the state models."""

from __future__ import annotations

import json

from skillssync.sync.models import (
    PackageKind,
    ScopeFilter,
    SkillRecord,
    SkillScope,
    SkillStatus,
    SyncHealth,
    SyncState,
)
from skillssync.sync.state_store import TOP_SKILLS_LIMIT, StateStore


def _skill(key: str, scope: SkillScope = SkillScope.GLOBAL, **kwargs) -> SkillRecord:
    return SkillRecord(
        id=f"skill-{key}",
        name=key.title(),
        scope=scope,
        canonical_source_path=f"/skills/{key}",
        skill_key=key,
        **kwargs,
    )


class TestSkillRecord:
    def test_accepts_legacy_dir_package_type(self):
        record = SkillRecord.model_validate(
            {
                "id": "skill-a",
                "name": "A",
                "scope": "global",
                "canonical_source_path": "/a",
                "skill_key": "a",
                "package_type": "dir",
            }
        )
        assert record.package_type == PackageKind.DIRECTORY
        assert record.status == SkillStatus.ACTIVE

    def test_sort_key_orders_active_global_first(self):
        archived = _skill("aaa", status=SkillStatus.ARCHIVED)
        project = _skill("bbb", SkillScope.PROJECT, workspace="/w")
        active = _skill("zzz")
        ordered = sorted([archived, project, active], key=lambda s: s.sort_key())
        assert [s.skill_key for s in ordered] == ["zzz", "bbb", "aaa"]


class TestSyncState:
    def test_filtered(self):
        state = SyncState(
            skills=[
                _skill("g"),
                _skill("p", SkillScope.PROJECT, workspace="/w"),
                _skill("old", status=SkillStatus.ARCHIVED),
            ]
        )
        assert [s.skill_key for s in state.filtered(ScopeFilter.GLOBAL)] == ["g"]
        assert [s.skill_key for s in state.filtered(ScopeFilter.PROJECT)] == ["p"]
        assert [s.skill_key for s in state.filtered(ScopeFilter.ARCHIVED)] == ["old"]
        assert len(state.filtered()) == 3

    def test_find(self):
        state = SyncState(skills=[_skill("a")])
        assert state.find("skill-a") is not None
        assert state.find("skill-b") is None


class TestStateStore:
    def test_missing_file_gives_empty_state(self, env):
        state = StateStore(env).load_state()
        assert state.skills == []
        assert state.sync.status == SyncHealth.UNKNOWN

    def test_corrupt_file_gives_empty_state(self, env):
        env.state_path.parent.mkdir(parents=True)
        env.state_path.write_text("{not json")
        assert StateStore(env).load_state().skills == []

    def test_save_and_load(self, env):
        store = StateStore(env)
        state = SyncState(generated_at="2026-01-01T00:00:00Z", skills=[_skill("a")])
        store.save_state(state)
        assert store.load_state() == state
        raw = json.loads(env.state_path.read_text())
        assert raw["version"] == 2
        assert raw["skills"][0]["package_type"] == "directory"

    def test_managed_links_round_trip(self, env):
        store = StateStore(env)
        store.save_managed_links(["/b", "/a", "/b"])
        assert store.load_managed_links() == ["/a", "/b"]

    def test_managed_links_missing(self, env):
        assert StateStore(env).load_managed_links() == []


class TestTopSkills:
    def test_preferred_first_then_filled(self, env):
        skills = [_skill(f"s{i}") for i in range(8)]
        state = SyncState(skills=skills, top_skills=["skill-s5", "skill-unknown", "skill-s5"])
        top = StateStore(env).top_skills(state)
        assert len(top) == TOP_SKILLS_LIMIT
        assert top[0].skill_key == "s5"
        assert [s.skill_key for s in top[1:]] == ["s0", "s1", "s2", "s3", "s4"]

    def test_fewer_than_limit(self, env):
        state = SyncState(skills=[_skill("a")])
        assert [s.skill_key for s in StateStore(env).top_skills(state)] == ["a"]
