"""Symlink reconciliation and auto-migration toward the preferred root."""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from skillssync.sync.config import ECOSYSTEM_ROOTS, SyncEnvironment
from skillssync.sync.errors import MigrationError
from skillssync.sync.fsutil import lexists, move_path, read_link, unique_destination
from skillssync.sync.models import utc_now
from skillssync.sync.package import inspect_manifest
from skillssync.sync.resolver import ResolvedSkill

logger = logging.getLogger(__name__)

_TMP_SUFFIX = ".skillssync-tmp"


@dataclass
class ReconcileResult:
    managed_links: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SymlinkReconciler:
    def __init__(self, env: SyncEnvironment) -> None:
        self._env = env

    def reconcile(self, skill: ResolvedSkill) -> ReconcileResult:
        """Point every non-canonical target slot of skill at its canonical path.

        Missing links are created and wrong links replaced atomically. A slot
        that holds real content is never touched here.
        """
        result = ReconcileResult()
        canonical = skill.canonical_path
        for slot in skill.target_slots():
            if slot == canonical:
                continue
            if slot.is_symlink():
                if not _points_at(slot, canonical):
                    self.link(slot, canonical)
            elif _same_file(slot, canonical):
                # Reached through a symlinked root; already the canonical copy.
                continue
            elif lexists(slot):
                message = (
                    f"{skill.skill_key}: {slot} holds a real copy; "
                    "left untouched without auto-migration"
                )
                logger.warning(message)
                result.warnings.append(message)
                continue
            else:
                self.link(slot, canonical)
            result.managed_links.append(slot)
        return result

    def migrate(self, skill: ResolvedSkill) -> ResolvedSkill:
        """Move the migration source into the preferred slot and link the rest back.

        Any filesystem failure is raised as MigrationError.
        """
        source = skill.migration_source
        target = skill.migration_target
        if source is None or target is None:
            return skill
        key = skill.skill_key
        try:
            if source.path != target and not _same_file(source.path, target):
                if target.is_symlink():
                    target.unlink()
                elif target.is_dir():
                    self._back_up(target, key)
                elif lexists(target):
                    raise MigrationError(key, f"canonical path occupied: {target}")
                move_path(source.path, target)
                logger.info(f"Migrated {key}: {source.path} -> {target}")
                try:
                    self.link(source.path, target)
                except OSError:
                    move_path(target, source.path)
                    raise
            for occ in skill.occurrences:
                if occ.path in (target, source.path):
                    continue
                if _same_file(occ.path, target) or _same_file(occ.path, source.path):
                    continue
                if lexists(occ.path) and not occ.path.is_symlink():
                    self._back_up(occ.path, key)
                if not (occ.path.is_symlink() and _points_at(occ.path, target)):
                    self.link(occ.path, target)
        except OSError as e:
            raise MigrationError(key, str(e)) from e

        canonical = dataclasses.replace(
            source,
            path=target,
            root=skill.target_roots[0],
            root_kind=ECOSYSTEM_ROOTS[0][0],
            is_symlink=False,
            link_target=None,
            manifest=inspect_manifest(target, skill.kind),
        )
        return dataclasses.replace(
            skill, canonical=canonical, migration_source=None, migration_target=None
        )

    def link(self, slot: Path, target: Path) -> None:
        """Create or atomically replace the symlink at slot."""
        slot.parent.mkdir(parents=True, exist_ok=True)
        tmp = slot.parent / f".{slot.name}{_TMP_SUFFIX}"
        if lexists(tmp):
            tmp.unlink()
        os.symlink(target, tmp, target_is_directory=target.is_dir())
        try:
            os.replace(tmp, slot)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.info(f"Linked {slot} -> {target}")

    def cleanup_stale(self, previous: Iterable[str], current: Iterable[str]) -> list[str]:
        """Remove links managed by an earlier run that are no longer desired."""
        keep = set(current)
        removed: list[str] = []
        for raw in sorted(set(previous) - keep):
            path = Path(raw)
            if not path.is_symlink():
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Could not remove stale link {path}: {e}")
                continue
            logger.info(f"Removed stale link {path}")
            removed.append(raw)
        return removed

    def _back_up(self, path: Path, skill_key: str) -> Path:
        stamp = utc_now().strftime("%Y%m%dT%H%M%SZ")
        name = f"{stamp}-{skill_key.replace('/', '-')}"
        destination = unique_destination(self._env.backups_root, name)
        move_path(path, destination)
        logger.warning(f"Moved displaced copy {path} to {destination}")
        return destination


def _points_at(link: Path, target: Path) -> bool:
    try:
        if read_link(link) == target:
            return True
    except OSError:
        return False
    return lexists(target) and os.path.realpath(link) == os.path.realpath(target)


def _same_file(a: Path, b: Path) -> bool:
    """a and b are one real entry, reached through a symlinked parent directory."""
    if a.is_symlink() or b.is_symlink() or not (lexists(a) and lexists(b)):
        return False
    return os.path.realpath(a) == os.path.realpath(b)
