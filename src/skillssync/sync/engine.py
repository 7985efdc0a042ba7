"""Sync run orchestration: discover, resolve, migrate, reconcile, persist."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from skillssync.sync.audit import AuditStatus, AuditStore
from skillssync.sync.codex_registry import CodexRegistryWriter
from skillssync.sync.config import SyncEnvironment, SyncOptions, skill_roots
from skillssync.sync.discovery import SkillDiscovery
from skillssync.sync.errors import ConflictError
from skillssync.sync.fsutil import lexists
from skillssync.sync.models import (
    ArchiveManifest,
    PackageKind,
    ScopeFilter,
    SkillRecord,
    SkillScope,
    SkillStatus,
    SyncHealth,
    SyncMetadata,
    SyncState,
    SyncSummary,
    SyncTrigger,
    iso8601,
    utc_now,
)
from skillssync.sync.package import read_title
from skillssync.sync.preferences import PreferencesStore
from skillssync.sync.reconciler import SymlinkReconciler
from skillssync.sync.resolver import CanonicalResolver, ResolvedSkill
from skillssync.sync.state_store import TOP_SKILLS_LIMIT, StateStore

logger = logging.getLogger(__name__)

ARCHIVE_MANIFEST = "manifest.json"


def skill_id(scope: str, workspace: str | None, skill_key: str) -> str:
    seed = f"{scope}|{workspace or 'global'}|{skill_key}"
    return "skill-" + hashlib.sha1(seed.encode()).hexdigest()[:12]


def archive_source_path(bundle: Path, kind: PackageKind) -> Path:
    return bundle / ("source.md" if kind == PackageKind.FILE else "source")


class SyncEngine:
    def __init__(self, env: SyncEnvironment | None = None) -> None:
        self.env = env or SyncEnvironment.from_env()
        self.discovery = SkillDiscovery(self.env)
        self.resolver = CanonicalResolver(self.env)
        self.reconciler = SymlinkReconciler(self.env)
        self.store = StateStore(self.env)
        self.preferences = PreferencesStore(self.env)
        self.audit = AuditStore(self.env)
        self.registry = CodexRegistryWriter(self.env.codex_config_path)

    # -- queries ------------------------------------------------------------

    def load_state(self) -> SyncState:
        return self.store.load_state()

    def list_skills(self, scope: ScopeFilter = ScopeFilter.ALL) -> list[SkillRecord]:
        return self.load_state().filtered(scope)

    def find_skill(self, skill_id_or_key: str, workspace: str | None = None) -> SkillRecord | None:
        """Look a record up by id, or by skill key (optionally within one workspace).

        Raises ValueError when a bare key matches more than one record.
        """
        state = self.load_state()
        if (skill := state.find(skill_id_or_key)) is not None:
            return skill
        matches = [
            s
            for s in state.skills
            if s.skill_key == skill_id_or_key and (workspace is None or s.workspace == workspace)
        ]
        if len(matches) > 1:
            active = [s for s in matches if not s.is_archived]
            if len(active) == 1:
                return active[0]
            raise ValueError(
                f"Skill key {skill_id_or_key!r} is ambiguous; pass an id or --workspace"
            )
        return matches[0] if matches else None

    def workspaces(self, options: SyncOptions | None = None) -> list[Path]:
        return self.discovery.find_workspaces(options or self.preferences.options())

    def allowed_roots(self, options: SyncOptions | None = None) -> list[Path]:
        """Roots mutations may touch: global roots, archives and project roots."""
        roots = [root for _, root in self.env.global_roots()]
        roots.append(self.env.archives_root)
        for workspace in self.workspaces(options):
            roots.extend(root for _, root in skill_roots(workspace))
        return roots

    # -- sync ---------------------------------------------------------------

    def run_sync(
        self,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        options: SyncOptions | None = None,
    ) -> SyncState:
        """Run one full sync and persist the result.

        On failure the previous records are kept, the state is marked failed
        with the error text, and the error is re-raised.
        """
        if options is None:
            options = self.preferences.options()
        started = utc_now()
        clock = time.monotonic()
        previous = self.store.load_state()
        self._mark_syncing(previous, started)
        logger.info(f"Sync started (trigger={trigger})")
        try:
            state = self._run(options, started, clock, previous.top_skills)
        except Exception as e:
            self._persist_failure(previous, started, clock, e, trigger)
            raise
        logger.info(
            f"Sync finished: {state.summary.global_count} global, "
            f"{state.summary.project_count} project skill(s) in {state.sync.duration_ms}ms"
        )
        self.audit.record(
            "sync",
            AuditStatus.SUCCESS,
            f"Synced {len(state.skills)} skill(s)",
            trigger=trigger,
            details={"warnings": str(len(state.sync.warnings))},
        )
        return state

    def _run(
        self,
        options: SyncOptions,
        started: datetime,
        clock: float,
        preferred: list[str],
    ) -> SyncState:
        discovered = self.discovery.discover(options)
        resolution = self.resolver.resolve(discovered.occurrences, options)
        if resolution.conflicts:
            for conflict in resolution.conflicts:
                logger.warning(f"Conflict for {conflict.skill_key}: {', '.join(conflict.paths)}")
            raise ConflictError(resolution.conflicts)

        warnings = list(resolution.warnings)
        skills: list[ResolvedSkill] = []
        for skill in resolution.skills:
            if skill.migration_target is not None:
                skill = self.reconciler.migrate(skill)
            skills.append(skill)

        managed: list[str] = []
        records: list[SkillRecord] = []
        for skill in skills:
            try:
                result = self.reconciler.reconcile(skill)
            except OSError as e:
                message = f"{skill.skill_key}: reconciliation failed: {e}"
                logger.warning(message)
                warnings.append(message)
            else:
                managed.extend(str(p) for p in result.managed_links)
                warnings.extend(result.warnings)
            records.append(self._record(skill))

        keep = managed + [str(s.canonical_path) for s in skills]
        self.reconciler.cleanup_stale(self.store.load_managed_links(), keep)
        self.store.save_managed_links(managed)

        records.extend(self.archived_records())
        records.sort(key=lambda r: r.sort_key())

        try:
            self.registry.write(records)
        except OSError as e:
            message = f"Could not update Codex registry: {e}"
            logger.warning(message)
            warnings.append(message)

        finished = utc_now()
        active = [r for r in records if not r.is_archived]
        state = SyncState(
            generated_at=iso8601(finished),
            sync=SyncMetadata(
                status=SyncHealth.OK,
                last_started_at=iso8601(started),
                last_finished_at=iso8601(finished),
                duration_ms=int((time.monotonic() - clock) * 1000),
                warnings=warnings,
            ),
            summary=SyncSummary(
                global_count=sum(1 for r in active if r.scope == SkillScope.GLOBAL),
                project_count=sum(1 for r in active if r.scope == SkillScope.PROJECT),
            ),
            skills=records,
            top_skills=_top_skill_ids(preferred, records),
        )
        self.store.save_state(state)
        return state

    def _record(self, skill: ResolvedSkill) -> SkillRecord:
        canonical = skill.canonical_path
        workspace = str(skill.workspace) if skill.workspace else None
        if skill.canonical.is_symlink and skill.canonical.link_target is not None:
            symlink_target = str(skill.canonical.link_target)
        else:
            symlink_target = str(canonical)
        return SkillRecord(
            id=skill_id(skill.scope.value, workspace, skill.skill_key),
            name=read_title(canonical, skill.kind) or skill.skill_key.rsplit("/", 1)[-1],
            scope=skill.scope,
            workspace=workspace,
            canonical_source_path=str(canonical),
            target_paths=sorted(str(p) for p in skill.target_slots()),
            exists=lexists(canonical),
            is_symlink_canonical=canonical.is_symlink(),
            package_type=skill.kind,
            skill_key=skill.skill_key,
            symlink_target=symlink_target,
        )

    def archived_records(self) -> list[SkillRecord]:
        root = self.env.archives_root
        if not root.is_dir():
            return []
        records: list[SkillRecord] = []
        for bundle in sorted(root.iterdir()):
            manifest_file = bundle / ARCHIVE_MANIFEST
            if not manifest_file.is_file():
                continue
            try:
                manifest = ArchiveManifest.model_validate(json.loads(manifest_file.read_text()))
            except (json.JSONDecodeError, OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable archive manifest {manifest_file}: {e}")
                continue
            source = archive_source_path(bundle, manifest.package_type)
            records.append(
                SkillRecord(
                    id=skill_id("archived", str(bundle), manifest.skill_key),
                    name=manifest.name,
                    scope=manifest.original_scope,
                    workspace=manifest.original_workspace,
                    canonical_source_path=str(source),
                    target_paths=sorted(manifest.removed_links),
                    exists=lexists(source),
                    package_type=manifest.package_type,
                    skill_key=manifest.skill_key,
                    symlink_target=str(source),
                    status=SkillStatus.ARCHIVED,
                    archived_at=manifest.archived_at,
                    archived_bundle_path=str(bundle),
                    archived_original_scope=manifest.original_scope,
                    archived_original_workspace=manifest.original_workspace,
                )
            )
        return records

    def _mark_syncing(self, previous: SyncState, started: datetime) -> None:
        marker = previous.model_copy(deep=True)
        marker.sync.status = SyncHealth.SYNCING
        marker.sync.last_started_at = iso8601(started)
        try:
            self.store.save_state(marker)
        except OSError as e:
            logger.warning(f"Could not mark state as syncing: {e}")

    def _persist_failure(
        self,
        previous: SyncState,
        started: datetime,
        clock: float,
        error: Exception,
        trigger: SyncTrigger,
    ) -> None:
        finished = utc_now()
        conflicts = len(error.conflicts) if isinstance(error, ConflictError) else 0
        failed = SyncState(
            generated_at=iso8601(finished),
            sync=SyncMetadata(
                status=SyncHealth.FAILED,
                last_started_at=iso8601(started),
                last_finished_at=iso8601(finished),
                duration_ms=int((time.monotonic() - clock) * 1000),
                error=str(error),
            ),
            summary=SyncSummary(
                global_count=previous.summary.global_count,
                project_count=previous.summary.project_count,
                conflict_count=conflicts,
            ),
            skills=previous.skills,
            top_skills=previous.top_skills,
        )
        logger.error(f"Sync failed: {error}")
        try:
            self.store.save_state(failed)
        except OSError as e:
            logger.error(f"Could not persist failed sync state: {e}")
        self.audit.record("sync", AuditStatus.FAILED, str(error), trigger=trigger)


def _top_skill_ids(preferred: list[str], records: list[SkillRecord]) -> list[str]:
    """Keep preferred ids that still exist, then fill up from sorted records."""
    present = {r.id for r in records}
    ids: list[str] = []
    for skill_id in preferred:
        if skill_id in present and skill_id not in ids:
            ids.append(skill_id)
    for record in records:
        if len(ids) >= TOP_SKILLS_LIMIT:
            break
        if record.id not in ids:
            ids.append(record.id)
    return ids[:TOP_SKILLS_LIMIT]
