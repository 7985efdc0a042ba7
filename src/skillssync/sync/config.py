"""Filesystem layout and per-run configuration for the sync engine."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

MANIFEST_NAME = "SKILL.md"
PROTECTED_SEGMENT = ".system"

STATE_FILE = "state.json"
PREFERENCES_FILE = "app-settings.json"
AUDIT_FILE = "audit-log.json"
MANAGED_LINKS_FILE = ".skill-sync-manifest.json"

DISCOVERY_MAX_DEPTH = 3


class RootKind(StrEnum):
    CLAUDE = "claude"
    AGENTS = "agents"
    CODEX = "codex"
    LEGACY = "legacy"


# Priority order: the first entry is the preferred canonical root.
ECOSYSTEM_ROOTS: tuple[tuple[RootKind, str], ...] = (
    (RootKind.CLAUDE, ".claude/skills"),
    (RootKind.AGENTS, ".agents/skills"),
    (RootKind.CODEX, ".codex/skills"),
)

ROOT_PRIORITY: dict[RootKind, int] = {kind: i for i, (kind, _) in enumerate(ECOSYSTEM_ROOTS)}
ROOT_PRIORITY[RootKind.LEGACY] = len(ECOSYSTEM_ROOTS)


def skill_roots(base: Path) -> list[tuple[RootKind, Path]]:
    """Ecosystem skill roots under a home directory or workspace, in priority order."""
    return [(kind, base / sub) for kind, sub in ECOSYSTEM_ROOTS]


@dataclass
class SyncEnvironment:
    home: Path
    runtime_dir: Path
    dev_root: Path
    worktrees_root: Path
    trash_dir: Path

    @classmethod
    def for_home(cls, home: Path, runtime_dir: Path | None = None) -> SyncEnvironment:
        if sys.platform == "darwin":
            trash = home / ".Trash"
        else:
            data_home = os.environ.get("XDG_DATA_HOME")
            base = Path(data_home) if data_home else home / ".local" / "share"
            trash = base / "Trash" / "files"
        return cls(
            home=home,
            runtime_dir=runtime_dir or home / ".config" / "ai-agents" / "skillssync",
            dev_root=home / "Dev",
            worktrees_root=home / ".codex" / "worktrees",
            trash_dir=trash,
        )

    @classmethod
    def from_env(cls) -> SyncEnvironment:
        """Build from the current user's home, honouring SKILLS_SYNC_* overrides."""
        home_override = os.environ.get("SKILLS_SYNC_HOME")
        home = Path(home_override).expanduser() if home_override else Path.home()
        runtime_override = os.environ.get("SKILLS_SYNC_RUNTIME_DIR")
        runtime_dir = Path(runtime_override).expanduser() if runtime_override else None
        env = cls.for_home(home, runtime_dir)
        if dev_root := os.environ.get("SKILLS_SYNC_DEV_ROOT"):
            env.dev_root = Path(dev_root).expanduser()
        return env

    @property
    def state_path(self) -> Path:
        return self.runtime_dir / STATE_FILE

    @property
    def preferences_path(self) -> Path:
        return self.runtime_dir / PREFERENCES_FILE

    @property
    def audit_path(self) -> Path:
        return self.runtime_dir / AUDIT_FILE

    @property
    def managed_links_path(self) -> Path:
        return self.runtime_dir / MANAGED_LINKS_FILE

    @property
    def archives_root(self) -> Path:
        return self.runtime_dir / "archives"

    @property
    def backups_root(self) -> Path:
        return self.runtime_dir / "migration-backups"

    @property
    def legacy_root(self) -> Path:
        return self.home / ".config" / "ai-agents" / "skills"

    @property
    def codex_config_path(self) -> Path:
        return self.home / ".codex" / "config.toml"

    def global_roots(self) -> list[tuple[RootKind, Path]]:
        return skill_roots(self.home)

    def preferred_global_root(self) -> Path:
        return self.global_roots()[0][1]


@dataclass(frozen=True)
class SyncOptions:
    """Explicit configuration for one sync run."""

    auto_migrate: bool = False
    discovery_roots: tuple[Path, ...] = field(default_factory=tuple)
