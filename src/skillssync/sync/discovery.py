"""Discovery: enumerate every skill package occurrence under the known roots."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from skillssync.sync.config import (
    DISCOVERY_MAX_DEPTH,
    ECOSYSTEM_ROOTS,
    MANIFEST_NAME,
    ROOT_PRIORITY,
    RootKind,
    SyncEnvironment,
    SyncOptions,
    skill_roots,
)
from skillssync.sync.fsutil import has_protected_segment, lexists, read_link
from skillssync.sync.models import PackageKind, SkillScope
from skillssync.sync.package import (
    ManifestInfo,
    detect_kind,
    guess_kind,
    hash_package,
    inspect_manifest,
)

logger = logging.getLogger(__name__)

# Group directories (without a manifest) may nest packages this deep.
_MAX_NESTING = 4


@dataclass(frozen=True)
class RawOccurrence:
    scope: SkillScope
    workspace: Path | None
    root_kind: RootKind
    root: Path
    path: Path
    skill_key: str
    kind: PackageKind
    is_symlink: bool = False
    link_target: Path | None = None
    manifest: ManifestInfo | None = None
    content_hash: str | None = None

    @property
    def priority(self) -> tuple[int, str, str]:
        return (ROOT_PRIORITY[self.root_kind], str(self.root), str(self.path))

    @property
    def live(self) -> bool:
        """For a symlink occurrence: the link resolves to something."""
        return self.link_target is not None and self.path.exists()

    @property
    def healthy(self) -> bool:
        return self.manifest is not None and self.manifest.healthy

    @property
    def regular_manifest(self) -> bool:
        return self.healthy and self.manifest is not None and not self.manifest.is_symlink


@dataclass
class DiscoveryResult:
    occurrences: list[RawOccurrence] = field(default_factory=list)
    workspaces: list[Path] = field(default_factory=list)


class SkillDiscovery:
    def __init__(self, env: SyncEnvironment) -> None:
        self._env = env

    def discover(self, options: SyncOptions) -> DiscoveryResult:
        result = DiscoveryResult()
        result.occurrences.extend(
            self._scan_roots(self._env.global_roots(), SkillScope.GLOBAL)
        )
        result.occurrences.extend(self.scan_legacy())
        result.workspaces = self.find_workspaces(options)
        for workspace in result.workspaces:
            result.occurrences.extend(
                self._scan_roots(skill_roots(workspace), SkillScope.PROJECT, workspace)
            )
        logger.debug(
            f"Discovered {len(result.occurrences)} occurrence(s) "
            f"across {len(result.workspaces)} workspace(s)"
        )
        return result

    def _scan_roots(
        self,
        roots: list[tuple[RootKind, Path]],
        scope: SkillScope,
        workspace: Path | None = None,
    ) -> list[RawOccurrence]:
        """Scan roots in priority order, once per real directory.

        A root that is a symlink to a higher-priority root already scanned
        would otherwise report every package a second time.
        """
        occurrences: list[RawOccurrence] = []
        seen: dict[str, Path] = {}
        for kind, root in roots:
            real = os.path.realpath(root)
            if real in seen:
                logger.debug(f"Skipping {root}: same directory as {seen[real]}")
                continue
            seen[real] = root
            occurrences.extend(self.scan_root(root, kind, scope, workspace))
        return occurrences

    # -- workspaces ---------------------------------------------------------

    def find_workspaces(self, options: SyncOptions) -> list[Path]:
        candidates: list[Path] = []
        for child in _subdirs(self._env.dev_root, follow=True):
            if self._is_workspace(child):
                candidates.append(child)
        for owner in _subdirs(self._env.worktrees_root, follow=True):
            for repo in _subdirs(owner, follow=True):
                if self._is_workspace(repo):
                    candidates.append(repo)

        seen_roots: set[str] = set()
        for root in options.discovery_roots:
            if not root.is_absolute():
                logger.warning(f"Ignoring relative discovery root: {root}")
                continue
            key = os.path.normpath(root)
            if key in seen_roots:
                continue
            seen_roots.add(key)
            candidates.extend(self._walk_for_workspaces(root, 0))

        unique: dict[str, Path] = {}
        for candidate in candidates:
            unique.setdefault(os.path.realpath(candidate), candidate)
        return sorted(unique.values(), key=str)

    def _walk_for_workspaces(self, directory: Path, depth: int) -> list[Path]:
        if self._is_workspace(directory):
            return [directory]
        if depth >= DISCOVERY_MAX_DEPTH:
            return []
        found: list[Path] = []
        for child in _subdirs(directory, follow=False):
            found.extend(self._walk_for_workspaces(child, depth + 1))
        return found

    def _is_workspace(self, directory: Path) -> bool:
        if os.path.realpath(directory) == os.path.realpath(self._env.home):
            return False
        try:
            return any((directory / sub).is_dir() for _, sub in ECOSYSTEM_ROOTS)
        except OSError:
            return False

    # -- packages -----------------------------------------------------------

    def scan_root(
        self,
        root: Path,
        root_kind: RootKind,
        scope: SkillScope,
        workspace: Path | None = None,
    ) -> list[RawOccurrence]:
        if not root.is_dir():
            return []
        found: list[RawOccurrence] = []
        self._walk(root, root, "", 0, root_kind, scope, workspace, found)
        return found

    def _walk(
        self,
        root: Path,
        directory: Path,
        prefix: str,
        depth: int,
        root_kind: RootKind,
        scope: SkillScope,
        workspace: Path | None,
        found: list[RawOccurrence],
    ) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for entry in entries:
            if entry.name.startswith("."):
                continue
            path = Path(entry.path)
            base = dict(scope=scope, workspace=workspace, root_kind=root_kind, root=root)
            try:
                if entry.is_symlink():
                    occurrence = self._symlink_occurrence(path, prefix, base)
                    if occurrence is not None:
                        found.append(occurrence)
                elif entry.is_dir(follow_symlinks=False):
                    if lexists(path / MANIFEST_NAME):
                        found.append(
                            RawOccurrence(
                                **base,
                                path=path,
                                skill_key=prefix + entry.name,
                                kind=PackageKind.DIRECTORY,
                                manifest=inspect_manifest(path, PackageKind.DIRECTORY),
                                content_hash=hash_package(path, PackageKind.DIRECTORY),
                            )
                        )
                    elif depth < _MAX_NESTING:
                        self._walk(
                            root, path, f"{prefix}{entry.name}/", depth + 1,
                            root_kind, scope, workspace, found,
                        )
                elif not prefix and _is_file_package(path):
                    found.append(
                        RawOccurrence(
                            **base,
                            path=path,
                            skill_key=path.stem,
                            kind=PackageKind.FILE,
                            manifest=inspect_manifest(path, PackageKind.FILE),
                            content_hash=hash_package(path, PackageKind.FILE),
                        )
                    )
            except OSError as e:
                logger.warning(f"Skipping unreadable package {path}: {e}")

    def _symlink_occurrence(
        self, path: Path, prefix: str, base: dict
    ) -> RawOccurrence | None:
        target = read_link(path)
        if path.exists():
            kind = detect_kind(path)
            if kind is None:
                return None
        else:
            kind = guess_kind(path)
        if kind == PackageKind.FILE and (prefix or path.suffix.lower() != ".md"):
            return None
        key = prefix + (path.stem if kind == PackageKind.FILE else path.name)
        manifest = inspect_manifest(path, kind) if path.exists() else None
        return RawOccurrence(
            **base,
            path=path,
            skill_key=key,
            kind=kind,
            is_symlink=True,
            link_target=target,
            manifest=manifest,
        )

    def scan_legacy(self) -> list[RawOccurrence]:
        """Single-file skills in the read-only legacy store."""
        root = self._env.legacy_root
        found: list[RawOccurrence] = []
        try:
            entries = sorted(root.iterdir()) if root.is_dir() else []
        except OSError as e:
            logger.debug(f"Skipping legacy store {root}: {e}")
            return found
        for path in entries:
            if path.name.startswith(".") or path.suffix.lower() != ".md":
                continue
            found.append(
                RawOccurrence(
                    scope=SkillScope.GLOBAL,
                    workspace=None,
                    root_kind=RootKind.LEGACY,
                    root=root,
                    path=path,
                    skill_key=path.stem,
                    kind=PackageKind.FILE,
                    is_symlink=path.is_symlink(),
                )
            )
        return found


def _is_file_package(path: Path) -> bool:
    return (
        path.is_file()
        and path.suffix.lower() == ".md"
        and path.name.lower() != "readme.md"
        and not has_protected_segment(path)
    )


def _subdirs(directory: Path, *, follow: bool) -> list[Path]:
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError:
        return []
    result: list[Path] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if not follow and entry.is_symlink():
                continue
            if entry.is_dir(follow_symlinks=follow):
                result.append(Path(entry.path))
        except OSError:
            continue
    return result
