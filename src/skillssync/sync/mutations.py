"""User-initiated mutations: delete, archive, restore, rename, make global.

Every operator validates its target against the allowed roots and the
protected namespace before touching the filesystem, then runs a full sync
and returns the resulting state.
"""

from __future__ import annotations

import json
import logging
import shutil
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote

from skillssync.sync.audit import AuditStatus
from skillssync.sync.config import skill_roots
from skillssync.sync.engine import ARCHIVE_MANIFEST, SyncEngine, archive_source_path
from skillssync.sync.errors import (
    ConfirmationRequiredError,
    InvalidOperationError,
    OperationError,
    OutsideAllowedRootsError,
    ProtectedPathError,
    RenameNoOpError,
    SyncEngineError,
    TargetExistsError,
    TargetMissingError,
)
from skillssync.sync.fsutil import (
    atomic_write,
    has_protected_segment,
    is_within,
    lexists,
    move_path,
    normalize,
    read_link,
    unique_destination,
)
from skillssync.sync.models import (
    ArchiveManifest,
    SkillRecord,
    SkillScope,
    SyncState,
    SyncTrigger,
    iso8601,
    utc_now,
)
from skillssync.sync.package import manifest_path, normalized_skill_key, slot_name, updated_title

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    state: SyncState | None = None
    # Set when the filesystem work landed but the follow-up sync failed.
    sync_error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed and self.sync_error is None


class SkillMutator:
    def __init__(self, engine: SyncEngine) -> None:
        self._engine = engine
        self._env = engine.env

    # -- operators ----------------------------------------------------------

    def delete(self, skill: SkillRecord, *, confirmed: bool = False) -> SyncState:
        """Move the skill's canonical content (or archive bundle) to the trash."""
        self._delete_files(skill, confirmed=confirmed)
        return self._engine.run_sync(SyncTrigger.DELETE)

    def archive(self, skill: SkillRecord, *, confirmed: bool = False) -> SyncState:
        """Move canonical content into a new archive bundle and drop its links."""
        self._archive_files(skill, confirmed=confirmed)
        return self._engine.run_sync(SyncTrigger.ARCHIVE)

    def restore(self, skill: SkillRecord, *, confirmed: bool = False) -> SyncState:
        """Move an archived skill back to the preferred global root."""
        self._restore_files(skill, confirmed=confirmed)
        return self._engine.run_sync(SyncTrigger.RESTORE)

    def make_global(self, skill: SkillRecord, *, confirmed: bool = False) -> SyncState:
        """Promote a project skill to the preferred global root."""
        self._promote_files(skill, confirmed=confirmed)
        return self._engine.run_sync(SyncTrigger.MAKE_GLOBAL)

    def rename(self, skill: SkillRecord, new_title: str) -> SyncState:
        """Rename to the slug of new_title and rewrite the manifest title.

        The package stays in its current parent directory. A failed title
        rewrite moves the package back.
        """
        self._rename_files(skill, new_title)
        return self._engine.run_sync(SyncTrigger.RENAME)

    def apply_batch(
        self,
        operation: str,
        skills: list[SkillRecord],
        *,
        confirmed: bool = False,
    ) -> BatchResult:
        """Apply a confirmable operator to each skill, then sync once.

        operation is one of ``delete``, ``archive``, ``restore`` or
        ``make_global``. Per-item outcomes reflect the filesystem work only;
        a failure of the closing sync lands in ``sync_error``.
        """
        steps: dict[str, tuple[Callable[..., None], SyncTrigger]] = {
            "delete": (self._delete_files, SyncTrigger.DELETE),
            "archive": (self._archive_files, SyncTrigger.ARCHIVE),
            "restore": (self._restore_files, SyncTrigger.RESTORE),
            "make_global": (self._promote_files, SyncTrigger.MAKE_GLOBAL),
        }
        if operation not in steps:
            raise InvalidOperationError(operation, f"unsupported batch operation: {operation}")
        step, trigger = steps[operation]

        result = BatchResult()
        for skill in skills:
            try:
                step(skill, confirmed=confirmed)
            except SyncEngineError as e:
                result.failed.append((skill.id, str(e)))
            except OSError as e:
                result.failed.append((skill.id, f"{type(e).__name__}: {e}"))
            else:
                result.succeeded.append(skill.id)

        if result.succeeded:
            try:
                result.state = self._engine.run_sync(trigger)
            except SyncEngineError as e:
                logger.warning(f"Batch {operation} applied but the sync failed: {e}")
                result.sync_error = str(e)
            except OSError as e:
                logger.warning(f"Batch {operation} applied but the sync failed: {e}")
                result.sync_error = f"{type(e).__name__}: {e}"
        if result.state is None:
            result.state = self._engine.load_state()
        return result

    # -- filesystem steps ---------------------------------------------------

    def _delete_files(self, skill: SkillRecord, *, confirmed: bool) -> None:
        op = "delete"
        with self._audited(op, skill):
            if not confirmed:
                raise ConfirmationRequiredError(op)
            if skill.is_archived and skill.archived_bundle_path:
                target = Path(skill.archived_bundle_path)
            else:
                target = Path(skill.canonical_source_path)
            if is_within(target, self._env.legacy_root):
                raise InvalidOperationError(op, "delete blocked: legacy skills are read-only")
            self._check_path(op, target)
            if not lexists(target):
                raise TargetMissingError(op)

            trashed = self._move_to_trash(target)
            logger.info(f"Moved {target} to trash at {trashed}")

    def _archive_files(self, skill: SkillRecord, *, confirmed: bool) -> None:
        op = "archive"
        with self._audited(op, skill):
            if not confirmed:
                raise ConfirmationRequiredError(op)
            if skill.is_archived:
                raise InvalidOperationError(op, "archive requires an active skill")
            source = Path(skill.canonical_source_path)
            self._check_path(op, source)
            if not lexists(source):
                raise TargetMissingError(op, "source")

            now = utc_now()
            stamp = now.strftime("%Y%m%dT%H%M%SZ")
            safe_key = skill.skill_key.replace("/", "-")
            bundle = self._env.archives_root / f"{stamp}-{safe_key}-{uuid.uuid4().hex[:8]}"
            links: list[Path] = []
            for raw in skill.target_paths:
                link = Path(raw)
                if link != source and link.is_symlink() and read_link(link) == source:
                    links.append(link)

            # Links are dropped only once the content is safely in the bundle.
            bundle.mkdir(parents=True)
            try:
                move_path(source, archive_source_path(bundle, skill.package_type))
            except OSError:
                shutil.rmtree(bundle, ignore_errors=True)
                raise
            removed: list[str] = []
            for link in links:
                link.unlink()
                removed.append(str(link))

            manifest = ArchiveManifest(
                archived_at=iso8601(now),
                skill_key=skill.skill_key,
                name=skill.name,
                package_type=skill.package_type,
                original_scope=skill.scope,
                original_workspace=skill.workspace,
                original_canonical_source_path=str(source),
                removed_links=removed,
            )
            atomic_write(
                bundle / ARCHIVE_MANIFEST,
                json.dumps(manifest.model_dump(mode="json"), indent=2) + "\n",
            )
            logger.info(f"Archived {skill.skill_key} into {bundle}")

    def _restore_files(self, skill: SkillRecord, *, confirmed: bool) -> None:
        op = "restore"
        with self._audited(op, skill):
            if not confirmed:
                raise ConfirmationRequiredError(op)
            if not skill.is_archived or not skill.archived_bundle_path:
                raise InvalidOperationError(op, "restore requires an archived skill")
            bundle = Path(skill.archived_bundle_path)
            self._check_path(op, bundle)
            manifest_file = bundle / ARCHIVE_MANIFEST
            try:
                manifest = ArchiveManifest.model_validate_json(manifest_file.read_text())
            except (OSError, ValueError) as e:
                raise InvalidOperationError(op, f"restore manifest is unreadable: {e}") from e
            source = archive_source_path(bundle, manifest.package_type)
            if not lexists(source):
                raise TargetMissingError(op, "source")

            name = slot_name(manifest.skill_key, manifest.package_type)
            destination = self._free_slot(
                op, [root for _, root in self._env.global_roots()], name
            )
            move_path(source, destination)
            shutil.rmtree(bundle)
            logger.info(f"Restored {manifest.skill_key} to {destination}")

    def _promote_files(self, skill: SkillRecord, *, confirmed: bool) -> None:
        op = "make_global"
        with self._audited(op, skill):
            if not confirmed:
                raise ConfirmationRequiredError(op)
            if skill.is_archived or skill.scope != SkillScope.PROJECT:
                raise InvalidOperationError(op, "make_global requires an active project skill")
            if not skill.skill_key.strip() or has_protected_segment(skill.skill_key):
                raise ProtectedPathError(op)
            source = Path(skill.canonical_source_path)
            self._check_path(op, source, self._project_roots())
            if not lexists(source):
                raise TargetMissingError(op, "source")

            destination = self._free_slot(
                op,
                [root for _, root in self._env.global_roots()],
                slot_name(skill.skill_key, skill.package_type),
            )
            move_path(source, destination)
            logger.info(f"Promoted {skill.skill_key} from {source} to {destination}")

    def _rename_files(self, skill: SkillRecord, new_title: str) -> None:
        op = "rename"
        with self._audited(op, skill):
            if skill.is_archived:
                raise InvalidOperationError(op, "rename requires an active skill")
            title = new_title.strip()
            new_slug = normalized_skill_key(title)
            if not new_slug:
                raise InvalidOperationError(op, "rename produced an empty skill key")
            if has_protected_segment(skill.skill_key):
                raise ProtectedPathError(op)
            current_leaf = skill.skill_key.rsplit("/", 1)[-1]
            if new_slug == current_leaf:
                raise RenameNoOpError()
            source = Path(skill.canonical_source_path)
            self._check_path(op, source)
            if not lexists(source):
                raise TargetMissingError(op, "source")

            prefix = skill.skill_key[: -len(current_leaf)]
            new_key = prefix + new_slug
            name = slot_name(new_key, skill.package_type)
            base = self._env.home
            if skill.scope == SkillScope.PROJECT and skill.workspace:
                base = Path(skill.workspace)
            self._free_slot(op, [root for _, root in skill_roots(base)], name)
            destination = source.parent / slot_name(new_slug, skill.package_type)
            if lexists(destination):
                raise TargetExistsError(op, str(destination))

            move_path(source, destination)
            try:
                manifest = manifest_path(destination, skill.package_type)
                text = manifest.read_text(encoding="utf-8")
                atomic_write(manifest, updated_title(text, title))
            except (OSError, UnicodeDecodeError) as e:
                move_path(destination, source)
                raise InvalidOperationError(op, f"rename could not update the title: {e}") from e
            logger.info(f"Renamed {skill.skill_key} to {new_key}")

    # -- helpers ------------------------------------------------------------

    def _project_roots(self) -> list[Path]:
        roots: list[Path] = []
        for workspace in self._engine.workspaces():
            roots.extend(root for _, root in skill_roots(workspace))
        return roots

    def _check_path(self, op: str, path: Path, roots: list[Path] | None = None) -> None:
        if has_protected_segment(normalize(path)):
            raise ProtectedPathError(op)
        allowed = roots if roots is not None else self._engine.allowed_roots()
        if not any(normalize(path) != normalize(root) and is_within(path, root) for root in allowed):
            raise OutsideAllowedRootsError(op)

    def _free_slot(self, op: str, roots: list[Path], name: str) -> Path:
        """Slot `name` in the first root, provided no root already holds it."""
        for root in roots:
            if lexists(root / name):
                raise TargetExistsError(op, str(root / name))
        return roots[0] / name

    def _move_to_trash(self, target: Path) -> Path:
        trash = self._env.trash_dir
        trash.mkdir(parents=True, exist_ok=True)
        destination = unique_destination(trash, target.name)
        if trash.name == "files" and trash.parent.name == "Trash":
            info_dir = trash.parent / "info"
            info_dir.mkdir(parents=True, exist_ok=True)
            atomic_write(
                info_dir / f"{destination.name}.trashinfo",
                "[Trash Info]\n"
                f"Path={quote(str(normalize(target)))}\n"
                f"DeletionDate={utc_now().strftime('%Y-%m-%dT%H:%M:%S')}\n",
            )
        move_path(target, destination)
        return destination

    @contextmanager
    def _audited(self, op: str, skill: SkillRecord) -> Iterator[None]:
        """Record the outcome of the filesystem part of a mutation."""
        try:
            yield
        except OperationError as e:
            self._record(op, skill, AuditStatus.BLOCKED, str(e))
            raise
        except Exception as e:
            self._record(op, skill, AuditStatus.FAILED, str(e))
            raise
        self._record(op, skill, AuditStatus.SUCCESS, f"{op} {skill.skill_key}")

    def _record(self, op: str, skill: SkillRecord, status: AuditStatus, summary: str) -> None:
        self._engine.audit.record(
            op,
            status,
            summary,
            trigger=op,
            paths=[skill.canonical_source_path],
            details={"skill_id": skill.id, "skill_key": skill.skill_key},
        )
