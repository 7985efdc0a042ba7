"""Tests for validation/ — manifest checks, references, Codex visibility, repair prompt."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from skillssync.sync.models import SkillRecord, SkillScope, SkillStatus
from skillssync.validation.models import ValidationIssue, ValidationResult
from skillssync.validation.references import broken_references
from skillssync.validation.repair import build_repair_prompt
from skillssync.validation.validator import SkillValidator, invalid_frontmatter_line

_VALID = "---\nname: demo\ndescription: Demo skill\n---\n\n# Demo\n"


def _write_skill(home: Path, text: str | bytes = _VALID, key: str = "demo") -> Path:
    package = home / ".claude" / "skills" / key
    package.mkdir(parents=True, exist_ok=True)
    manifest = package / "SKILL.md"
    if isinstance(text, bytes):
        manifest.write_bytes(text)
    else:
        manifest.write_text(text)
    return package


def _synced(engine, home, text: str | bytes = _VALID, key: str = "demo") -> SkillRecord:
    _write_skill(home, text, key)
    return next(s for s in engine.run_sync().skills if s.skill_key == key)


def _codes(skill: SkillRecord) -> list[str]:
    return SkillValidator().validate(skill).codes


class TestManifestChecks:
    def test_valid_package_has_no_issues(self, engine, home):
        result = SkillValidator().validate(_synced(engine, home))
        assert result.issues == []
        assert not result.has_warnings
        assert result.summary_text == "0 issues found"

    def test_missing_manifest(self, engine, home):
        skill = _synced(engine, home)
        (Path(skill.canonical_source_path) / "SKILL.md").unlink()
        [issue] = SkillValidator().validate(skill).issues
        assert issue.code == "missing_skill_md"
        assert issue.message.startswith("SKILL.md not found at ")

    def test_empty_manifest(self, engine, home):
        assert _codes(_synced(engine, home, "  \n\n")) == ["empty_main_file"]

    def test_non_utf8_manifest(self, engine, home):
        assert _codes(_synced(engine, home, b"\xff\xfe\x00bad")) == ["unreadable_utf8_main_file"]

    def test_symlinked_manifest_is_reported_and_checked(self, engine, home, tmp_path):
        store = tmp_path / "store.md"
        store.write_text(_VALID)
        package = home / ".claude" / "skills" / "demo"
        package.mkdir(parents=True)
        (package / "SKILL.md").symlink_to(store)
        [skill] = engine.run_sync().skills
        assert _codes(skill) == ["skill_md_is_symlink"]

    def test_broken_manifest_symlink_stops(self, engine, home):
        package = home / ".claude" / "skills" / "demo"
        package.mkdir(parents=True)
        (package / "SKILL.md").symlink_to(home / "missing.md")
        [skill] = engine.run_sync().skills
        assert _codes(skill) == ["broken_skill_md_symlink"]

    def test_missing_title(self, engine, home):
        skill = _synced(engine, home, "Just some prose.\n")
        assert _codes(skill) == [
            "missing_title",
            "missing_frontmatter_name",
            "missing_frontmatter_description",
        ]


class TestReferences:
    _BODY = (
        "---\n"
        "name: demo\n"
        "description: Demo skill\n"
        "---\n"
        "\n"
        "# Demo\n"
        "\n"
        "Read the docs first.\n"
        "See [guide](references/guide.md), [site](https://example.com) and [top](#top).\n"
    )

    def test_broken_link_reported_with_line(self, engine, home):
        [issue] = SkillValidator().validate(_synced(engine, home, self._BODY)).issues
        assert issue.code == "broken_reference"
        assert issue.message == "Broken reference: references/guide.md"
        assert issue.line == 9
        assert issue.location.endswith("SKILL.md:9")

    def test_existing_reference_not_reported(self, engine, home):
        package = _write_skill(home, self._BODY)
        (package / "references").mkdir()
        (package / "references" / "guide.md").write_text("guide")
        [skill] = engine.run_sync().skills
        assert _codes(skill) == []

    def test_open_commands_only_count_inside_code(self, tmp_path):
        text = "Then open notes/todo.txt in prose.\n```\nopen docs/setup.md\n```\n"
        refs = broken_references(text, tmp_path)
        assert [(r.path, r.line) for r in refs] == [("docs/setup.md", 3)]

    def test_duplicates_keep_earliest_line(self, tmp_path):
        text = "`scripts/run.sh`\n[run](./scripts/run.sh#usage)\n[mail](mailto:a@b.c)\n"
        refs = broken_references(text, tmp_path)
        assert [(r.path, r.line) for r in refs] == [("scripts/run.sh", 1)]


class TestCodexVisibility:
    def test_name_mismatch(self, engine, home):
        text = "---\nname: Other Thing\ndescription: d\n---\n# Demo\n"
        [issue] = SkillValidator().validate(_synced(engine, home, text)).issues
        assert issue.code == "frontmatter_name_mismatch_skill_key"
        assert issue.auto_fixable

    def test_name_compared_by_slug(self, engine, home):
        text = "---\nname: My Skill\ndescription: d\n---\n"
        assert _codes(_synced(engine, home, text, key="my-skill")) == []

    def test_invalid_yaml_stops_codex_checks(self, engine, home):
        text = "---\nname: wrong\ndescription: [draft] [beta]\n---\n# Demo\n"
        [issue] = SkillValidator().validate(_synced(engine, home, text)).issues
        assert issue.code == "codex_frontmatter_invalid_yaml"
        assert issue.line == 3

    def test_codex_link_missing_on_disk(self, engine, home):
        skill = _synced(engine, home)
        (home / ".codex" / "skills" / "demo").unlink()
        assert _codes(skill) == ["codex_target_missing_on_disk"]

    def test_codex_link_broken(self, engine, home):
        skill = _synced(engine, home)
        link = home / ".codex" / "skills" / "demo"
        link.unlink()
        link.symlink_to(home / "nowhere")
        assert _codes(skill) == ["codex_target_broken_symlink"]

    def test_codex_target_without_manifest(self, engine, home):
        skill = _synced(engine, home)
        link = home / ".codex" / "skills" / "demo"
        link.unlink()
        link.mkdir()
        assert _codes(skill) == ["codex_target_missing_skill_md"]

    def test_archived_record_not_visible(self, home):
        package = _write_skill(home)
        skill = SkillRecord(
            id="skill-demo",
            name="demo",
            scope=SkillScope.GLOBAL,
            canonical_source_path=str(package),
            skill_key="demo",
            status=SkillStatus.ARCHIVED,
        )
        assert _codes(skill) == [
            "archived_skill_not_visible_in_codex",
            "codex_target_not_declared",
        ]


class TestInvalidFrontmatterLine:
    def test_accepts_plain_and_flow_values(self):
        text = "---\nname: demo\ntags: [a, b]\nlist:\n  - one\n- two\n---\n"
        assert invalid_frontmatter_line(text) is None

    def test_missing_separator(self):
        line, detail = invalid_frontmatter_line("---\nname: demo\njust words\n---\n")
        assert line == 3
        assert "separator" in detail

    def test_unclosed_flow_sequence(self):
        line, _ = invalid_frontmatter_line("---\ntags: [a, b\n---\n")
        assert line == 2

    def test_quoted_value_is_fine(self):
        assert invalid_frontmatter_line('---\ndescription: "[draft] [beta]"\n---\n') is None


class TestRepairPrompt:
    def test_includes_context_and_issue(self):
        skill = SkillRecord(
            id="skill-x",
            name="Demo",
            scope=SkillScope.PROJECT,
            workspace="/w",
            canonical_source_path="/w/.claude/skills/demo",
            skill_key="demo",
        )
        issue = ValidationIssue(
            code="missing_frontmatter_name",
            message="Frontmatter `name` is required",
            source="/w/.claude/skills/demo/SKILL.md",
            line=1,
            details="Add a name.",
        )
        prompt = build_repair_prompt(skill, issue)
        lines = prompt.split("\n")
        assert lines[:4] == ["Skill: Demo", "Skill key: demo", "Scope: project", "Workspace: /w"]
        assert "Issue (missing_frontmatter_name): Frontmatter `name` is required" in lines
        assert "Issue source: /w/.claude/skills/demo/SKILL.md:1" in lines
        assert "frontmatter fix" in prompt
        assert lines[-1] == "Please investigate and repair this skill package."


class TestValidationResult:
    def test_summary_text(self):
        issue = ValidationIssue(code="c", message="m")
        assert ValidationResult(issues=[issue]).summary_text == "1 issue found"
        assert ValidationResult(issues=[issue, issue]).summary_text == "2 issues found"


def test_validator_survives_removed_package(engine, home):
    skill = _synced(engine, home)
    shutil.rmtree(skill.canonical_source_path)
    assert not os.path.exists(skill.canonical_source_path)
    assert _codes(skill)[0] == "missing_skill_md"
