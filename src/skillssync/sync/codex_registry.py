"""Managed `[[skills.config]]` block inside the Codex config.toml."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from skillssync.sync.fsutil import atomic_write
from skillssync.sync.models import SkillRecord

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# skills-sync:begin"
END_MARKER = "# skills-sync:end"


def registry_paths(skills: list[SkillRecord]) -> list[str]:
    """Paths Codex should load: the `.agents` target when declared, else canonical."""
    paths: set[str] = set()
    for skill in skills:
        if skill.is_archived:
            continue
        needle = f"/.agents/skills/{skill.skill_key}"
        agents = next(
            (os.path.normpath(t) for t in skill.target_paths if os.path.normpath(t).endswith(needle)),
            None,
        )
        paths.add(agents or os.path.normpath(skill.canonical_source_path))
    return sorted(paths)


def managed_block(paths: list[str]) -> str:
    lines = [BEGIN_MARKER]
    if not paths:
        lines.append("# No managed skill entries")
    for i, path in enumerate(paths):
        if i:
            lines.append("")
        lines.append("[[skills.config]]")
        lines.append(f"path = {json.dumps(path, ensure_ascii=False)}")
        lines.append("enabled = true")
    lines.append(END_MARKER)
    return "\n".join(lines)


def upsert_block(current: str, block: str) -> str:
    """Replace the managed block in current, or append it, keeping other text."""
    text = current.replace("\r\n", "\n")
    begin = text.find(BEGIN_MARKER)
    end = text.find(END_MARKER, begin + len(BEGIN_MARKER)) if begin != -1 else -1
    if begin != -1 and end != -1:
        prefix = text[:begin].strip("\n")
        suffix = text[end + len(END_MARKER) :].strip("\n")
    else:
        prefix, suffix = text.strip("\n"), ""
    parts = [part for part in (prefix, block, suffix) if part]
    return "\n\n".join(parts) + "\n"


class CodexRegistryWriter:
    def __init__(self, config_path: Path) -> None:
        self._config_path = config_path

    def write(self, skills: list[SkillRecord]) -> bool:
        """Upsert the managed block. Returns True when the file changed."""
        try:
            current = self._config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            current = ""
        updated = upsert_block(current, managed_block(registry_paths(skills)))
        if updated == current:
            return False
        atomic_write(self._config_path, updated)
        logger.info(f"Updated Codex skill registry in {self._config_path}")
        return True
