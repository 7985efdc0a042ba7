"""Plain-text repair instructions for handing an issue to an external tool."""

from __future__ import annotations

from skillssync.sync.models import SkillRecord
from skillssync.validation.models import ValidationIssue


def build_repair_prompt(skill: SkillRecord, issue: ValidationIssue) -> str:
    lines = [
        f"Skill: {skill.name}",
        f"Skill key: {skill.skill_key}",
        f"Scope: {skill.scope}",
    ]
    if skill.workspace:
        lines.append(f"Workspace: {skill.workspace}")
    lines.append(f"Canonical path: {skill.canonical_source_path}")
    lines.append(f"Issue ({issue.code}): {issue.message}")
    if issue.location:
        lines.append(f"Issue source: {issue.location}")
    if issue.details:
        lines.append(f"Issue details: {issue.details}")
    if issue.auto_fixable:
        lines.append("This issue only needs a frontmatter fix in SKILL.md.")
    lines.append("")
    lines.append("Please investigate and repair this skill package.")
    return "\n".join(lines)
