"""Skill validator: manifest content, local references and Codex visibility."""

from __future__ import annotations

import os
from pathlib import Path

from skillssync.sync.fsutil import lexists, read_link
from skillssync.sync.models import PackageKind, SkillRecord
from skillssync.sync.package import (
    display_title,
    manifest_path,
    normalized_skill_key,
    package_root,
    parse_frontmatter,
    slot_name,
)
from skillssync.validation.models import ValidationIssue, ValidationResult
from skillssync.validation.references import broken_references

CODEX_SKILLS_SEGMENT = "/.codex/skills/"


class SkillValidator:
    """Inspect one skill record against the filesystem. Never raises for I/O."""

    def validate(self, skill: SkillRecord) -> ValidationResult:
        package = Path(skill.canonical_source_path)
        manifest = manifest_path(package, skill.package_type)
        src = str(manifest)
        issues: list[ValidationIssue] = []

        if manifest.is_symlink():
            try:
                target = read_link(manifest)
            except OSError:
                target = None
            if target is None or not target.exists():
                issues.append(
                    ValidationIssue(
                        code="broken_skill_md_symlink",
                        message="SKILL.md symlink is broken",
                        source=src,
                        line=1,
                        details=f"Symlink target does not exist: {target}."
                        if target
                        else "Symlink destination cannot be resolved.",
                    )
                )
                return ValidationResult(issues=issues)
            issues.append(
                ValidationIssue(
                    code="skill_md_is_symlink",
                    message="SKILL.md is a symlink",
                    source=src,
                    line=1,
                    details=f"This skill uses a symlinked SKILL.md target: {target}.",
                )
            )

        if not manifest.exists() or manifest.is_dir():
            if skill.package_type == PackageKind.DIRECTORY:
                code, message = "missing_skill_md", f"SKILL.md not found at {manifest}"
            else:
                code, message = "missing_main_file", f"Main file not found at {manifest}"
            issues.append(
                ValidationIssue(
                    code=code,
                    message=message,
                    source=src,
                    line=1,
                    details="The expected main skill file is missing on disk.",
                )
            )
            return ValidationResult(issues=issues)

        try:
            raw = manifest.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            issues.append(
                ValidationIssue(
                    code="unreadable_utf8_main_file",
                    message="Main file cannot be read as UTF-8",
                    source=src,
                    line=1,
                    details="Check encoding or file permissions.",
                )
            )
            return ValidationResult(issues=issues)

        if not raw.strip():
            issues.append(
                ValidationIssue(
                    code="empty_main_file",
                    message="Main file is empty",
                    source=src,
                    line=1,
                    details="SKILL.md has no meaningful content.",
                )
            )
            return ValidationResult(issues=issues)

        if display_title(parse_frontmatter(raw)) is None:
            issues.append(
                ValidationIssue(
                    code="missing_title",
                    message="No title found",
                    source=src,
                    line=1,
                    details="Add frontmatter `title`/`name` or a top-level `#` heading.",
                )
            )

        root = package_root(package, skill.package_type)
        for ref in broken_references(raw, root):
            issues.append(
                ValidationIssue(
                    code="broken_reference",
                    message=f"Broken reference: {ref.path}",
                    source=src,
                    line=ref.line,
                    details="Referenced path does not exist in this skill package.",
                )
            )

        issues.extend(self.codex_visibility(skill))
        return ValidationResult(issues=issues)

    def codex_visibility(self, skill: SkillRecord) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if skill.is_archived:
            issues.append(
                ValidationIssue(
                    code="archived_skill_not_visible_in_codex",
                    message="Archived skill is hidden from Codex",
                    source=skill.canonical_source_path,
                    line=1,
                    details="Archived skills are not shown in active Codex skill lists.",
                )
            )

        target = codex_target(skill)
        if target is None:
            issues.append(
                ValidationIssue(
                    code="codex_target_not_declared",
                    message="Codex target path is missing",
                    source=skill.canonical_source_path,
                    line=1,
                    details=f"No path like .../.codex/skills/{skill.skill_key} was found in target_paths.",
                )
            )
            return issues

        if not lexists(target):
            issues.append(
                ValidationIssue(
                    code="codex_target_missing_on_disk",
                    message="Codex target path does not exist",
                    source=str(target),
                    line=1,
                    details=f"Codex target path is declared but missing on disk: {target}.",
                )
            )
            return issues

        if target.is_symlink() and not target.exists():
            issues.append(
                ValidationIssue(
                    code="codex_target_broken_symlink",
                    message="Codex target symlink is broken",
                    source=str(target),
                    line=1,
                    details="Codex target points to a missing destination.",
                )
            )
            return issues

        codex_manifest = manifest_path(target, skill.package_type)
        try:
            if not codex_manifest.is_file():
                raise FileNotFoundError(codex_manifest)
            codex_raw = codex_manifest.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            issues.append(
                ValidationIssue(
                    code="codex_target_missing_skill_md",
                    message="Codex target misses a readable SKILL.md",
                    source=str(target),
                    line=1,
                    details=f"Codex can discover this package only if SKILL.md exists at {codex_manifest}.",
                )
            )
            return issues

        yaml_issue = invalid_frontmatter_line(codex_raw)
        if yaml_issue is not None:
            line, detail = yaml_issue
            issues.append(
                ValidationIssue(
                    code="codex_frontmatter_invalid_yaml",
                    message="Frontmatter is not valid YAML for Codex",
                    source=str(codex_manifest),
                    line=line,
                    details=detail,
                )
            )
            return issues

        fm = parse_frontmatter(codex_raw)
        name = fm.get("name")
        if name is None:
            issues.append(
                ValidationIssue(
                    code="missing_frontmatter_name",
                    message="Frontmatter `name` is required",
                    source=str(codex_manifest),
                    line=1,
                    details="Codex visibility metadata requires frontmatter `name` in SKILL.md.",
                )
            )
        if fm.get("description") is None:
            issues.append(
                ValidationIssue(
                    code="missing_frontmatter_description",
                    message="Frontmatter `description` is required",
                    source=str(codex_manifest),
                    line=1,
                    details="Codex visibility metadata requires frontmatter `description` in SKILL.md.",
                )
            )
        leaf = skill.skill_key.rsplit("/", 1)[-1]
        if name is not None and normalized_skill_key(name) != normalized_skill_key(leaf):
            issues.append(
                ValidationIssue(
                    code="frontmatter_name_mismatch_skill_key",
                    message="Frontmatter `name` does not match skill key",
                    source=str(codex_manifest),
                    line=1,
                    details=(
                        f"Found name '{name}', expected key '{skill.skill_key}'. "
                        "Codex may not match this skill consistently."
                    ),
                )
            )
        return issues


def codex_target(skill: SkillRecord) -> Path | None:
    suffix = "/" + slot_name(skill.skill_key, skill.package_type)
    for raw in skill.target_paths:
        path = os.path.normpath(raw)
        if CODEX_SKILLS_SEGMENT in path and path.endswith(suffix):
            return Path(path)
    return None


def invalid_frontmatter_line(text: str) -> tuple[int, str] | None:
    """First frontmatter line a strict YAML parser would reject, as (line, detail)."""
    fm = parse_frontmatter(text)
    for number, line in fm.lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        # Continuation of a block sequence or mapping
        if line[0].isspace() or stripped.startswith("- "):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            return number, f"Line '{stripped}' is missing a key/value separator (:)."
        if not key.strip():
            return number, "A frontmatter key is empty before ':'."
        value = value.strip()
        if value and value[0] not in "\"'" and _breaks_plain_scalar(value):
            return number, (
                f"Field '{key.strip()}' uses unquoted value '{value}' which breaks "
                "Codex YAML parsing. Wrap the value in quotes."
            )
    return None


def _breaks_plain_scalar(value: str) -> bool:
    if "] [" in value:
        return True
    return value.startswith("[") and not _is_flow_sequence(value)


def _is_flow_sequence(value: str) -> bool:
    if not (value.startswith("[") and value.endswith("]")):
        return False
    depth = 0
    for char in value:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if depth < 0:
            return False
    return depth == 0
