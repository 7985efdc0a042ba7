"""Canonical source selection and conflict detection."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from skillssync.sync.config import RootKind, SyncEnvironment, SyncOptions, skill_roots
from skillssync.sync.discovery import RawOccurrence
from skillssync.sync.models import PackageKind, SkillScope, SyncConflict
from skillssync.sync.package import slot_name

logger = logging.getLogger(__name__)


@dataclass
class ResolvedSkill:
    scope: SkillScope
    workspace: Path | None
    skill_key: str
    kind: PackageKind
    canonical: RawOccurrence
    occurrences: list[RawOccurrence]
    target_roots: list[Path]
    # Set when auto-migration should move `migration_source` into `migration_target`.
    migration_source: RawOccurrence | None = None
    migration_target: Path | None = None

    @property
    def canonical_path(self) -> Path:
        return self.canonical.path

    def slot(self, root: Path) -> Path:
        return root / slot_name(self.skill_key, self.kind)

    def target_slots(self) -> list[Path]:
        return [self.slot(root) for root in self.target_roots]


@dataclass
class Resolution:
    skills: list[ResolvedSkill] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class CanonicalResolver:
    def __init__(self, env: SyncEnvironment) -> None:
        self._env = env

    def resolve(self, occurrences: list[RawOccurrence], options: SyncOptions) -> Resolution:
        groups: dict[tuple[str, str, str], list[RawOccurrence]] = defaultdict(list)
        for occ in occurrences:
            if occ.root_kind == RootKind.LEGACY:
                continue
            workspace = str(occ.workspace) if occ.workspace else ""
            groups[(occ.scope.value, workspace, occ.skill_key)].append(occ)

        resolution = Resolution()
        for (_, _, key), group in sorted(groups.items()):
            group.sort(key=lambda o: o.priority)
            conflict = self._conflict(group)
            if conflict is not None:
                resolution.conflicts.append(conflict)
                continue
            skill = self._resolve_group(key, group)
            if skill is None:
                logger.debug(f"Dropping dangling links for {key}: {[str(o.path) for o in group]}")
                continue
            if options.auto_migrate:
                self._plan_migration(skill, resolution)
            resolution.skills.append(skill)
        return resolution

    def _conflict(self, group: list[RawOccurrence]) -> SyncConflict | None:
        independent = [o for o in group if not o.is_symlink and o.healthy]
        if len({o.content_hash for o in independent}) <= 1:
            return None
        first = independent[0]
        return SyncConflict(
            skill_key=first.skill_key,
            scope=first.scope,
            workspace=str(first.workspace) if first.workspace else None,
            paths=[str(o.path) for o in independent],
        )

    def _resolve_group(self, key: str, group: list[RawOccurrence]) -> ResolvedSkill | None:
        real = [o for o in group if not o.is_symlink]
        if real:
            canonical = real[0]
        else:
            live = [o for o in group if o.live]
            if not live:
                return None
            canonical = live[0]
        base = canonical.workspace if canonical.scope == SkillScope.PROJECT else self._env.home
        assert base is not None
        return ResolvedSkill(
            scope=canonical.scope,
            workspace=canonical.workspace,
            skill_key=key,
            kind=canonical.kind,
            canonical=canonical,
            occurrences=group,
            target_roots=[root for _, root in skill_roots(base)],
        )

    def _plan_migration(self, skill: ResolvedSkill, resolution: Resolution) -> None:
        real = [o for o in skill.occurrences if not o.is_symlink]
        if not real:
            return
        healthy = [o for o in real if o.healthy]
        source = next((o for o in healthy if o.regular_manifest), None)
        if source is None and healthy:
            source = healthy[0]
        if source is None:
            if not skill.canonical.healthy:
                message = (
                    f"{skill.skill_key}: canonical manifest at {skill.canonical_path} "
                    "is broken and no healthy copy exists; left untouched"
                )
                logger.warning(message)
                resolution.warnings.append(message)
            return

        preferred = skill.slot(skill.target_roots[0])
        others = [o for o in real if o is not source]
        if source.path == preferred and not others:
            return
        skill.migration_source = source
        skill.migration_target = preferred
